# slatedesk/core/db.py
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

logger = logging.getLogger("slatedesk.db")

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./slatedesk.db"
SCHEMA_PATH = Path(__file__).with_name("schema.sql")

_engine: AsyncEngine | None = None


def _ensure_asyncpg(url: str) -> str:
    """
    Normalize any postgres URL to asyncpg + ssl=require.
    Works for:
      - postgres://...
      - postgresql://...
      - postgresql+psycopg2://...
    """
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql+psycopg2://"):
        url = "postgresql://" + url[len("postgresql+psycopg2://"):]
    if not url.startswith("postgresql+asyncpg://"):
        url = "postgresql+asyncpg://" + url.split("postgresql://", 1)[-1]

    # asyncpg takes `ssl`, not libpq's `sslmode`
    parsed = urlparse(url)
    q = dict(parse_qsl(parsed.query))
    sslmode = q.pop("sslmode", None)
    if "ssl" not in q:
        q["ssl"] = sslmode or "require"
    final_url = urlunparse(parsed._replace(query=urlencode(q)))

    # minimal debug (no secrets)
    logger.info(
        "DB using asyncpg -> host=%s port=%s ssl=%s",
        parsed.hostname or "?",
        parsed.port or "?",
        q.get("ssl"),
    )
    return final_url


def get_database_url() -> str:
    raw = os.getenv("DATABASE_URL")
    if not raw:
        logger.info("DATABASE_URL not set; using local SQLite %s", DEFAULT_DATABASE_URL)
        return DEFAULT_DATABASE_URL
    if raw.startswith("sqlite"):
        if not raw.startswith("sqlite+aiosqlite"):
            raw = "sqlite+aiosqlite" + raw[len("sqlite"):]
        return raw
    return _ensure_asyncpg(raw)


async def init_engine(url: str | None = None) -> AsyncEngine:
    global _engine
    url = url or get_database_url()
    if url.startswith("sqlite"):
        _engine = create_async_engine(url)
    else:
        _engine = create_async_engine(url, pool_pre_ping=True)
    return _engine


async def close_engine():
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None


def _require_engine() -> AsyncEngine:
    if not _engine:
        raise RuntimeError("database engine not initialized")
    return _engine


@asynccontextmanager
async def transaction() -> AsyncIterator[AsyncConnection]:
    """One connection, one transaction; commits on exit, rolls back on error."""
    async with _require_engine().begin() as conn:
        yield conn


async def fetch_all(sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
    async with transaction() as conn:
        res = await conn.execute(text(sql), params or {})
        return [dict(m) for m in res.mappings().all()]


async def fetch_one(sql: str, params: dict[str, Any] | None = None) -> dict[str, Any] | None:
    rows = await fetch_all(sql, params)
    return rows[0] if rows else None


async def ensure_schema():
    # run schema once at startup; statements one by one (sqlite can't batch)
    ddl = SCHEMA_PATH.read_text(encoding="utf-8")
    async with transaction() as conn:
        for stmt in ddl.split(";"):
            if stmt.strip():
                await conn.execute(text(stmt))
