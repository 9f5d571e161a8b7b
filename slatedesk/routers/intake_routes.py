# slatedesk/routers/intake_routes.py
# Getting games into a slate: OCR of sportsbook screenshots / pasted lines,
# and schedule search for upcoming games.
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from slatedesk.models.schemas import MatchupResearchRequest, OcrImageRequest, OcrTextRequest, SportKey
from slatedesk.services.ocr import OCRExtractionError, OCRResult, extract_games_from_image, extract_games_from_text
from slatedesk.services.research import research_matchup, search_upcoming_games

logger = logging.getLogger("slatedesk.intake")
router = APIRouter(tags=["Intake"])


# -------------------------
# OCR
# -------------------------
@router.post("/ocr/image", response_model=OCRResult)
async def ocr_image(body: OcrImageRequest):
    if not body.imageBase64:
        raise HTTPException(status_code=400, detail="imageBase64 is required")
    try:
        return await extract_games_from_image(body.imageBase64)
    except OCRExtractionError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/ocr/text", response_model=OCRResult)
async def ocr_text(body: OcrTextRequest):
    if not body.text:
        raise HTTPException(status_code=400, detail="text is required")
    try:
        return await extract_games_from_text(body.text)
    except OCRExtractionError as e:
        raise HTTPException(status_code=502, detail=str(e))


# -------------------------
# Upcoming games
# -------------------------
@router.get("/upcoming-games/search")
async def upcoming_search(
    sport: SportKey = Query("ncaaf"),
    query: Optional[str] = Query(None, description="Free-text search; defaults to this week's games"),
):
    return await search_upcoming_games(sport, query)


@router.post("/upcoming-games/research")
async def upcoming_research(body: MatchupResearchRequest):
    return await research_matchup(body.awayTeam, body.homeTeam, sport=body.sport, game_time=body.gameTime)
