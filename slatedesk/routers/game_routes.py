# slatedesk/routers/game_routes.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response

from slatedesk.core import persist as store
from slatedesk.models.errors import NotFoundError
from slatedesk.models.schemas import EvidenceCreate, GameOverride, GamePatch, TopicRequest, WhyFactorCreate
from slatedesk.services import analysis
from slatedesk.services.research import findings_to_evidence, research_game, research_specific_topic

logger = logging.getLogger("slatedesk.games")
router = APIRouter(tags=["Games"])


async def _require_game(game_id: str):
    game = await store.get_game(game_id)
    if not game:
        raise HTTPException(status_code=404, detail="Game not found")
    return game


# -------------------------
# Game CRUD
# -------------------------
@router.get("/games/{game_id}")
async def get_game(game_id: str):
    return await _require_game(game_id)


@router.patch("/games/{game_id}")
async def update_game(game_id: str, body: GamePatch):
    game = await store.update_game(game_id, body.model_dump(exclude_unset=True))
    if not game:
        raise HTTPException(status_code=404, detail="Game not found")
    return game


@router.delete("/games/{game_id}", status_code=204)
async def delete_game(game_id: str):
    game = await _require_game(game_id)
    await store.delete_game(game_id)
    await store.refresh_game_count(game["slateId"])
    return Response(status_code=204)


# -------------------------
# Lock / unlock / override
# -------------------------
@router.post("/games/{game_id}/lock")
async def lock_game(game_id: str):
    await _require_game(game_id)
    return await store.update_game(game_id, {"isLocked": True, "status": "locked"})


@router.post("/games/{game_id}/unlock")
async def unlock_game(game_id: str):
    game = await _require_game(game_id)
    status = "ready" if game.get("pick") else "pending"
    return await store.update_game(game_id, {"isLocked": False, "status": status})


@router.post("/games/{game_id}/override")
async def override_game(game_id: str, body: GameOverride):
    await _require_game(game_id)
    fields = body.model_dump(exclude_none=True)
    fields["status"] = "override"
    game = await store.update_game(game_id, fields)
    logger.info("OVERRIDE game=%s pick=%r reason=%r", game_id, body.pick, body.overrideReason)
    return game


# -------------------------
# Evidence
# -------------------------
@router.get("/games/{game_id}/evidence")
async def list_evidence(game_id: str, category: Optional[str] = Query(None)):
    return await store.get_evidence(game_id, category=category)


@router.post("/games/{game_id}/evidence", status_code=201)
async def create_evidence(game_id: str, body: EvidenceCreate):
    await _require_game(game_id)
    return await store.create_evidence({**body.model_dump(exclude_none=True), "gameId": game_id})


# -------------------------
# Why factors
# -------------------------
@router.get("/games/{game_id}/why-factors")
async def list_why_factors(game_id: str):
    return await store.get_why_factors(game_id)


@router.post("/games/{game_id}/why-factors", status_code=201)
async def create_why_factor(game_id: str, body: WhyFactorCreate):
    await _require_game(game_id)
    return await store.create_why_factor({**body.model_dump(exclude_none=True), "gameId": game_id})


@router.delete("/games/{game_id}/why-factors", status_code=204)
async def clear_why_factors(game_id: str):
    await _require_game(game_id)
    await store.delete_why_factors(game_id)
    return Response(status_code=204)


# -------------------------
# Research
# -------------------------
@router.post("/games/{game_id}/research")
async def research(game_id: str):
    game = await _require_game(game_id)
    result = await research_game(game["homeTeam"], game["awayTeam"])
    rows = findings_to_evidence(game_id, result)
    evidence = await store.create_evidence_batch(rows) if rows else []
    return {"evidence": evidence, "citations": result["citations"]}


@router.post("/games/{game_id}/research-topic")
async def research_topic(game_id: str, body: TopicRequest):
    if not body.topic:
        raise HTTPException(status_code=400, detail="Topic is required")
    game = await _require_game(game_id)
    result = await research_specific_topic(game["homeTeam"], game["awayTeam"], body.topic)
    rows = findings_to_evidence(game_id, result)
    evidence = await store.create_evidence_batch(rows) if rows else []
    return {"evidence": evidence, "citations": result["citations"]}


# -------------------------
# Analysis
# -------------------------
@router.get("/games/{game_id}/analysis")
async def preview_analysis(game_id: str):
    """Score the game under the active framework without saving anything."""
    try:
        return await analysis.analyze_game(game_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/games/{game_id}/analyze")
async def analyze(game_id: str):
    try:
        game = await analysis.analyze_and_update_game(game_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"game": game, "whyFactors": await store.get_why_factors(game_id)}
