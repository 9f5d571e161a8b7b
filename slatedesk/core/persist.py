# slatedesk/core/persist.py
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncConnection

from slatedesk.core.db import fetch_all, fetch_one, transaction

# API field -> column, per table. Only these names ever reach SQL.
_COMMON = {"id": "id", "createdAt": "created_at"}

SLATE_COLUMNS = {
    **_COMMON,
    "name": "name",
    "sport": "sport",
    "status": "status",
    "gameCount": "game_count",
    "frameworkId": "framework_id",
    "screenshotUrl": "screenshot_url",
    "ocrRawText": "ocr_raw_text",
    "updatedAt": "updated_at",
}

GAME_COLUMNS = {
    **_COMMON,
    "slateId": "slate_id",
    "homeTeam": "home_team",
    "awayTeam": "away_team",
    "homeTeamCanonical": "home_team_canonical",
    "awayTeamCanonical": "away_team_canonical",
    "gameTime": "game_time",
    "spread": "spread",
    "spreadTeam": "spread_team",
    "total": "total",
    "moneylineHome": "moneyline_home",
    "moneylineAway": "moneyline_away",
    "status": "status",
    "pick": "pick",
    "pickLine": "pick_line",
    "pickEdge": "pick_edge",
    "confidenceLow": "confidence_low",
    "confidenceHigh": "confidence_high",
    "isLocked": "is_locked",
    "overrideReason": "override_reason",
    "notes": "notes",
    "flaggedForReview": "flagged_for_review",
    "frameworkVersion": "framework_version",
    "updatedAt": "updated_at",
}

FRAMEWORK_COLUMNS = {
    **_COMMON,
    "name": "name",
    "description": "description",
    "version": "version",
    "isActive": "is_active",
    "weights": "weights",
    "updatedAt": "updated_at",
}

RULE_COLUMNS = {
    **_COMMON,
    "frameworkId": "framework_id",
    "name": "name",
    "condition": "condition",
    "action": "action",
    "isEnabled": "is_enabled",
    "priority": "priority",
}

VERSION_COLUMNS = {
    **_COMMON,
    "frameworkId": "framework_id",
    "version": "version",
    "weights": "weights",
    "rules": "rules",
    "changelog": "changelog",
}

EVIDENCE_COLUMNS = {
    **_COMMON,
    "gameId": "game_id",
    "type": "type",
    "category": "category",
    "source": "source",
    "sourceUrl": "source_url",
    "headline": "headline",
    "snippet": "snippet",
    "fullContent": "full_content",
    "citations": "citations",
    "relevanceScore": "relevance_score",
    "fetchedAt": "fetched_at",
}

WHY_FACTOR_COLUMNS = {
    **_COMMON,
    "gameId": "game_id",
    "category": "category",
    "featureValue": "feature_value",
    "contribution": "contribution",
    "description": "description",
    "keyFacts": "key_facts",
    "uncertaintyFlags": "uncertainty_flags",
    "citations": "citations",
}

_JSON_FIELDS = {"weights", "condition", "action", "rules", "citations", "keyFacts", "uncertaintyFlags"}
_BOOL_FIELDS = {"isLocked", "flaggedForReview", "isActive", "isEnabled"}
_TS_FIELDS = {"gameTime"}
_SERVER_FIELDS = {"id", "createdAt", "updatedAt", "fetchedAt"}

# applied before insert; batch rows are padded with NULLs, which would bypass column DEFAULTs
_DEFAULTS = {
    "slates": {"sport": "NCAAF", "status": "draft", "gameCount": 0},
    "games": {"status": "pending", "isLocked": False, "flaggedForReview": False},
    "frameworks": {"version": 1, "isActive": True, "weights": {}},
    "framework_rules": {"isEnabled": True, "priority": 0},
}


def _now() -> datetime:
    # naive UTC: columns are TIMESTAMP WITHOUT TIME ZONE
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_ts(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _encode(field: str, value: Any) -> Any:
    if field in _JSON_FIELDS:
        return None if value is None else json.dumps(value, default=str)
    if field in _TS_FIELDS:
        return _to_ts(value)
    return value


def _decode(field: str, value: Any) -> Any:
    if value is None:
        return None
    if field in _JSON_FIELDS and isinstance(value, str):
        return json.loads(value)
    if field in _BOOL_FIELDS:
        return bool(value)
    return value


def _to_db(columns: Dict[str, str], data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        columns[k]: _encode(k, v)
        for k, v in data.items()
        if k in columns and k not in _SERVER_FIELDS
    }


def _from_db(columns: Dict[str, str], row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {field: _decode(field, row.get(col)) for field, col in columns.items()}


async def _insert(
    conn: AsyncConnection,
    table: str,
    columns: Dict[str, str],
    items: Iterable[Dict[str, Any]],
    stamp_updated: bool = False,
    with_seq: bool = False,
    fixed: Optional[Dict[str, Any]] = None,
) -> List[str]:
    """Insert rows with generated ids; returns the ids in input order."""
    now = _now()
    payload, ids = [], []
    for i, item in enumerate(items):
        row = _to_db(columns, {**_DEFAULTS.get(table, {}), **item})
        row["id"] = str(uuid.uuid4())
        row["created_at"] = now
        if stamp_updated:
            row["updated_at"] = now
        if with_seq:
            row["seq"] = i
        if fixed:
            row.update(fixed)
        payload.append(row)
        ids.append(row["id"])
    if not payload:
        return []

    # rows in one batch may carry different optional keys; pad to a common set
    keys = sorted({k for row in payload for k in row})
    for row in payload:
        for k in keys:
            row.setdefault(k, None)
    sql = f"INSERT INTO {table} ({', '.join(keys)}) VALUES ({', '.join(':' + k for k in keys)})"
    await conn.execute(text(sql), payload)
    return ids


async def _select_ids(conn: AsyncConnection, table: str, ids: List[str]) -> Dict[str, Dict[str, Any]]:
    if not ids:
        return {}
    stmt = text(f"SELECT * FROM {table} WHERE id IN :ids").bindparams(bindparam("ids", expanding=True))
    res = await conn.execute(stmt, {"ids": ids})
    return {m["id"]: dict(m) for m in res.mappings().all()}


async def _create_many(
    table: str,
    columns: Dict[str, str],
    items: Iterable[Dict[str, Any]],
    stamp_updated: bool = False,
    with_seq: bool = False,
) -> List[Dict[str, Any]]:
    async with transaction() as conn:
        ids = await _insert(conn, table, columns, items, stamp_updated, with_seq)
        rows = await _select_ids(conn, table, ids)
    return [_from_db(columns, rows[i]) for i in ids]


async def _update(
    conn: AsyncConnection,
    table: str,
    columns: Dict[str, str],
    row_id: str,
    data: Dict[str, Any],
    stamp_updated: bool = False,
) -> Optional[Dict[str, Any]]:
    values = _to_db(columns, data)
    if stamp_updated:
        values["updated_at"] = _now()
    if values:
        assignments = ", ".join(f"{col} = :{col}" for col in values)
        await conn.execute(
            text(f"UPDATE {table} SET {assignments} WHERE id = :_id"),
            {**values, "_id": row_id},
        )
    rows = await _select_ids(conn, table, [row_id])
    return _from_db(columns, rows.get(row_id))


async def _get(table: str, columns: Dict[str, str], row_id: str) -> Optional[Dict[str, Any]]:
    row = await fetch_one(f"SELECT * FROM {table} WHERE id = :id", {"id": row_id})
    return _from_db(columns, row)


async def _delete(table: str, row_id: str) -> bool:
    async with transaction() as conn:
        res = await conn.execute(text(f"DELETE FROM {table} WHERE id = :id"), {"id": row_id})
    return res.rowcount > 0


# ---------------- Slates ----------------
async def get_slates() -> List[Dict[str, Any]]:
    rows = await fetch_all("SELECT * FROM slates ORDER BY updated_at DESC")
    return [_from_db(SLATE_COLUMNS, r) for r in rows]


async def get_slate(slate_id: str) -> Optional[Dict[str, Any]]:
    return await _get("slates", SLATE_COLUMNS, slate_id)


async def create_slate(data: Dict[str, Any]) -> Dict[str, Any]:
    [slate] = await _create_many("slates", SLATE_COLUMNS, [data], stamp_updated=True)
    return slate


async def update_slate(slate_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    async with transaction() as conn:
        return await _update(conn, "slates", SLATE_COLUMNS, slate_id, data, stamp_updated=True)


async def delete_slate(slate_id: str) -> bool:
    async with transaction() as conn:
        game_ids = [
            r[0] for r in (await conn.execute(
                text("SELECT id FROM games WHERE slate_id = :sid"), {"sid": slate_id}
            )).all()
        ]
        for gid in game_ids:
            await _delete_game_children(conn, gid)
        await conn.execute(text("DELETE FROM games WHERE slate_id = :sid"), {"sid": slate_id})
        res = await conn.execute(text("DELETE FROM slates WHERE id = :id"), {"id": slate_id})
    return res.rowcount > 0


async def refresh_game_count(slate_id: str) -> Optional[Dict[str, Any]]:
    async with transaction() as conn:
        count = (await conn.execute(
            text("SELECT COUNT(*) FROM games WHERE slate_id = :sid"), {"sid": slate_id}
        )).scalar_one()
        return await _update(conn, "slates", SLATE_COLUMNS, slate_id, {"gameCount": count}, stamp_updated=True)


# ---------------- Games ----------------
async def get_games(slate_id: str) -> List[Dict[str, Any]]:
    rows = await fetch_all(
        "SELECT * FROM games WHERE slate_id = :sid ORDER BY game_time, created_at, id",
        {"sid": slate_id},
    )
    return [_from_db(GAME_COLUMNS, r) for r in rows]


async def get_game(game_id: str) -> Optional[Dict[str, Any]]:
    return await _get("games", GAME_COLUMNS, game_id)


async def create_game(data: Dict[str, Any]) -> Dict[str, Any]:
    [game] = await create_games([data])
    return game


async def create_games(items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return await _create_many("games", GAME_COLUMNS, items, stamp_updated=True)


async def update_game(game_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    async with transaction() as conn:
        return await _update(conn, "games", GAME_COLUMNS, game_id, data, stamp_updated=True)


async def _delete_game_children(conn: AsyncConnection, game_id: str):
    for table in ("evidence", "why_factors"):
        await conn.execute(text(f"DELETE FROM {table} WHERE game_id = :gid"), {"gid": game_id})


async def delete_game(game_id: str) -> bool:
    async with transaction() as conn:
        await _delete_game_children(conn, game_id)
        res = await conn.execute(text("DELETE FROM games WHERE id = :id"), {"id": game_id})
    return res.rowcount > 0


# ---------------- Frameworks ----------------
async def get_frameworks() -> List[Dict[str, Any]]:
    rows = await fetch_all("SELECT * FROM frameworks ORDER BY updated_at DESC")
    return [_from_db(FRAMEWORK_COLUMNS, r) for r in rows]


async def get_framework(framework_id: str) -> Optional[Dict[str, Any]]:
    return await _get("frameworks", FRAMEWORK_COLUMNS, framework_id)


async def get_active_framework() -> Optional[Dict[str, Any]]:
    row = await fetch_one(
        "SELECT * FROM frameworks WHERE is_active = :active ORDER BY updated_at DESC LIMIT 1",
        {"active": True},
    )
    return _from_db(FRAMEWORK_COLUMNS, row)


async def _deactivate_others(conn: AsyncConnection, keep_id: str):
    await conn.execute(
        text("UPDATE frameworks SET is_active = :off WHERE id <> :id"),
        {"off": False, "id": keep_id},
    )


async def create_framework(data: Dict[str, Any]) -> Dict[str, Any]:
    async with transaction() as conn:
        [fid] = await _insert(conn, "frameworks", FRAMEWORK_COLUMNS, [data], stamp_updated=True)
        if data.get("isActive", True):
            await _deactivate_others(conn, fid)
        rows = await _select_ids(conn, "frameworks", [fid])
    return _from_db(FRAMEWORK_COLUMNS, rows[fid])


async def update_framework(
    framework_id: str,
    data: Dict[str, Any],
    changelog: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Patch a framework. A change to `weights` bumps `version` and records a
    version snapshot (weights + current rules) in the same transaction.
    """
    async with transaction() as conn:
        rows = await _select_ids(conn, "frameworks", [framework_id])
        current = _from_db(FRAMEWORK_COLUMNS, rows.get(framework_id))
        if current is None:
            return None

        data = dict(data)
        if data.get("weights") is not None and data["weights"] != current["weights"]:
            data["version"] = int(current["version"] or 1) + 1
            rules = await conn.execute(
                text("SELECT * FROM framework_rules WHERE framework_id = :fid ORDER BY priority"),
                {"fid": framework_id},
            )
            snapshot = [_from_db(RULE_COLUMNS, dict(m)) for m in rules.mappings().all()]
            await _insert(conn, "framework_versions", VERSION_COLUMNS, [{
                "frameworkId": framework_id,
                "version": data["version"],
                "weights": data["weights"],
                "rules": snapshot,
                "changelog": changelog,
            }])
        if data.get("isActive"):
            await _deactivate_others(conn, framework_id)
        return await _update(conn, "frameworks", FRAMEWORK_COLUMNS, framework_id, data, stamp_updated=True)


async def delete_framework(framework_id: str) -> bool:
    return await _delete("frameworks", framework_id)


async def get_framework_rules(framework_id: str) -> List[Dict[str, Any]]:
    rows = await fetch_all(
        "SELECT * FROM framework_rules WHERE framework_id = :fid ORDER BY priority, created_at",
        {"fid": framework_id},
    )
    return [_from_db(RULE_COLUMNS, r) for r in rows]


async def create_framework_rule(data: Dict[str, Any]) -> Dict[str, Any]:
    [rule] = await _create_many("framework_rules", RULE_COLUMNS, [data])
    return rule


async def update_framework_rule(rule_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    async with transaction() as conn:
        return await _update(conn, "framework_rules", RULE_COLUMNS, rule_id, data)


async def delete_framework_rule(rule_id: str) -> bool:
    return await _delete("framework_rules", rule_id)


async def get_framework_versions(framework_id: str) -> List[Dict[str, Any]]:
    rows = await fetch_all(
        "SELECT * FROM framework_versions WHERE framework_id = :fid ORDER BY version DESC",
        {"fid": framework_id},
    )
    return [_from_db(VERSION_COLUMNS, r) for r in rows]


# ---------------- Evidence ----------------
async def get_evidence(game_id: str, category: Optional[str] = None) -> List[Dict[str, Any]]:
    sql = "SELECT * FROM evidence WHERE game_id = :gid"
    params: Dict[str, Any] = {"gid": game_id}
    if category:
        sql += " AND category = :cat"
        params["cat"] = category
    rows = await fetch_all(sql + " ORDER BY fetched_at DESC, seq", params)
    return [_from_db(EVIDENCE_COLUMNS, r) for r in rows]


async def create_evidence(data: Dict[str, Any]) -> Dict[str, Any]:
    [ev] = await create_evidence_batch([data])
    return ev


async def create_evidence_batch(items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    async with transaction() as conn:
        # one fetched_at per batch so a batch sorts together
        ids = await _insert(
            conn, "evidence", EVIDENCE_COLUMNS, items, with_seq=True, fixed={"fetched_at": _now()}
        )
        rows = await _select_ids(conn, "evidence", ids)
    return [_from_db(EVIDENCE_COLUMNS, rows[i]) for i in ids]


# ---------------- Why factors ----------------
async def get_why_factors(game_id: str) -> List[Dict[str, Any]]:
    rows = await fetch_all(
        "SELECT * FROM why_factors WHERE game_id = :gid ORDER BY created_at, seq",
        {"gid": game_id},
    )
    return [_from_db(WHY_FACTOR_COLUMNS, r) for r in rows]


async def create_why_factor(data: Dict[str, Any]) -> Dict[str, Any]:
    [wf] = await create_why_factors([data])
    return wf


async def create_why_factors(items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return await _create_many("why_factors", WHY_FACTOR_COLUMNS, items, with_seq=True)


async def _delete_why_factors(conn: AsyncConnection, game_id: str):
    await conn.execute(text("DELETE FROM why_factors WHERE game_id = :gid"), {"gid": game_id})


async def delete_why_factors(game_id: str) -> bool:
    """Drop every why-factor of a game. True even when there were none."""
    async with transaction() as conn:
        await _delete_why_factors(conn, game_id)
    return True


async def replace_why_factors(game_id: str, items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Delete every why-factor of a game and insert `items`, atomically."""
    async with transaction() as conn:
        await _delete_why_factors(conn, game_id)
        ids = await _insert(conn, "why_factors", WHY_FACTOR_COLUMNS, items, with_seq=True)
        rows = await _select_ids(conn, "why_factors", ids)
    return [_from_db(WHY_FACTOR_COLUMNS, rows[i]) for i in ids]
