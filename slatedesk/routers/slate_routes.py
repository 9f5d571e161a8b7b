# slatedesk/routers/slate_routes.py
from __future__ import annotations

import csv
import io
import logging
from typing import List

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response

from slatedesk.core import persist as store
from slatedesk.models.schemas import GameCreate, SlateCreate, SlatePatch
from slatedesk.services import analysis
from slatedesk.services.research import findings_to_evidence, research_game

logger = logging.getLogger("slatedesk.slates")
router = APIRouter(tags=["Slates"])

EXPORT_HEADER = ["Game", "Pick", "Line", "Edge", "Confidence", "Notes"]


async def _require_slate(slate_id: str):
    slate = await store.get_slate(slate_id)
    if not slate:
        raise HTTPException(status_code=404, detail="Slate not found")
    return slate


# -------------------------
# Slates
# -------------------------
@router.get("/slates")
async def list_slates():
    return await store.get_slates()


@router.get("/slates/{slate_id}")
async def get_slate(slate_id: str):
    return await _require_slate(slate_id)


@router.post("/slates", status_code=201)
async def create_slate(body: SlateCreate):
    slate = await store.create_slate(body.model_dump(exclude_none=True))
    logger.info("SLATE created id=%s name=%r", slate["id"], slate["name"])
    return slate


@router.patch("/slates/{slate_id}")
async def update_slate(slate_id: str, body: SlatePatch):
    slate = await store.update_slate(slate_id, body.model_dump(exclude_unset=True))
    if not slate:
        raise HTTPException(status_code=404, detail="Slate not found")
    return slate


@router.delete("/slates/{slate_id}", status_code=204)
async def delete_slate(slate_id: str):
    if not await store.delete_slate(slate_id):
        raise HTTPException(status_code=404, detail="Slate not found")
    return Response(status_code=204)


# -------------------------
# Games within a slate
# -------------------------
@router.get("/slates/{slate_id}/games")
async def list_games(slate_id: str):
    return await store.get_games(slate_id)


@router.post("/slates/{slate_id}/games", status_code=201)
async def create_game(slate_id: str, body: GameCreate):
    await _require_slate(slate_id)
    game = await store.create_game({**body.model_dump(exclude_none=True), "slateId": slate_id})
    await store.refresh_game_count(slate_id)
    return game


@router.post("/slates/{slate_id}/games/batch", status_code=201)
async def create_games(slate_id: str, body: List[GameCreate]):
    await _require_slate(slate_id)
    games = await store.create_games(
        [{**g.model_dump(exclude_none=True), "slateId": slate_id} for g in body]
    )
    await store.refresh_game_count(slate_id)
    logger.info("SLATE %s: added %d games", slate_id, len(games))
    return games


# -------------------------
# Export (locked picks as CSV)
# -------------------------
def _confidence(game) -> str:
    low, high = game.get("confidenceLow"), game.get("confidenceHigh")
    if low is None or high is None:
        return ""
    return f"{low:g}-{high:g}%"


def _signed(value) -> str:
    if value is None:
        return ""
    return f"+{value:g}" if value > 0 else f"{value:g}"


def export_csv(games) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for g in games:
        if not g.get("isLocked"):
            continue
        writer.writerow([
            f"{g['awayTeam']} @ {g['homeTeam']}",
            g.get("pick") or "",
            _signed(g.get("pickLine")),
            _signed(g.get("pickEdge")),
            _confidence(g),
            g.get("notes") or "",
        ])
    return buf.getvalue()


@router.get("/slates/{slate_id}/export")
async def export_slate(slate_id: str):
    slate = await _require_slate(slate_id)
    games = await store.get_games(slate_id)
    filename = "".join(c if c.isalnum() else "-" for c in slate["name"]) or "slate"
    return Response(
        content=export_csv(games),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}-picks.csv"'},
    )


# -------------------------
# Enrichment + analysis
# -------------------------
@router.post("/slates/{slate_id}/enrich")
async def enrich_slate(slate_id: str):
    """
    Research every game in the slate and store the findings as evidence.
    A game whose research fails keeps its current evidence.
    """
    await _require_slate(slate_id)
    await store.update_slate(slate_id, {"status": "enriching"})

    enriched = failed = 0
    for game in await store.get_games(slate_id):
        prior = game["status"]
        await store.update_game(game["id"], {"status": "enriching"})
        try:
            research = await research_game(game["homeTeam"], game["awayTeam"])
            rows = findings_to_evidence(game["id"], research)
            if rows:
                await store.create_evidence_batch(rows)
                enriched += 1
        except Exception as e:
            failed += 1
            logger.exception("ENRICH slate=%s game=%s failed: %s", slate_id, game["id"], e)
        finally:
            await store.update_game(game["id"], {"status": "pending" if prior == "enriching" else prior})

    slate = await store.update_slate(slate_id, {"status": "ready"})
    logger.info("ENRICH slate=%s -> %d games with new evidence, %d failed", slate_id, enriched, failed)
    return {"slate": slate, "enriched": enriched, "failed": failed}


@router.post("/slates/{slate_id}/analyze")
async def analyze_slate(slate_id: str):
    await _require_slate(slate_id)
    games = await analysis.analyze_slate(slate_id)
    return {"analyzed": len(games), "games": games}
