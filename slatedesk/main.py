# slatedesk/main.py
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import logging
import time
import os

from slatedesk.core.db import close_engine, ensure_schema, init_engine

# ------------ Router imports ------------
from slatedesk.routers import (
    framework_routes,
    game_routes,
    intake_routes,
    slate_routes,
)
from slatedesk.services.openai_client import is_openai_configured
from slatedesk.services.research import is_research_configured

# ------------ Logging ------------
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger("slatedesk")


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = await init_engine()
    await ensure_schema()
    logger.info("DB ready (%s)", engine.dialect.name)
    try:
        yield
    finally:
        await close_engine()


# ------------ App ------------
app = FastAPI(
    title="Slatedesk API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url=None,
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# ------------ Access log middleware ------------
class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        t0 = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
        finally:
            dt = (time.perf_counter() - t0) * 1000
            logger.info(
                "ACCESS %s %s q=%s -> %s in %.1fms",
                request.method,
                request.url.path,
                request.url.query,
                status,
                dt,
            )
        return response


app.add_middleware(AccessLogMiddleware)

# ------------ CORS ------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------ Global error handler ------------
@app.exception_handler(Exception)
async def _unhandled(request: Request, exc: Exception):
    logger.exception("UNHANDLED ERROR: %s %s", request.method, request.url)
    return JSONResponse(status_code=500, content={"error": "internal_error"})


# ------------ Health & status ------------
@app.get("/health")
async def health():
    return {"ok": True}


@app.get("/status")
async def status():
    return {
        "ok": True,
        "has_openai_key": is_openai_configured(),
        "has_perplexity_key": is_research_configured(),
        "analysis_concurrency": int(os.getenv("ANALYSIS_CONCURRENCY", "1")),
    }


# ------------ Mount routers ------------
app.include_router(slate_routes.router, prefix="/api")
app.include_router(game_routes.router, prefix="/api")
app.include_router(framework_routes.router, prefix="/api")
app.include_router(intake_routes.router, prefix="/api")
