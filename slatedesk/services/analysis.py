# slatedesk/services/analysis.py
from __future__ import annotations

import asyncio
import logging
import os
import weakref
from typing import Any, Dict, List, Optional, Tuple

from slatedesk.core import persist as store
from slatedesk.models.errors import NotFoundError
from slatedesk.models.pick_model import build_pick
from slatedesk.models.types import AnalysisResult, Framework, Game, WhyFactor
from slatedesk.services.ai_scoring import score_evidence

logger = logging.getLogger("slatedesk.analysis")

ANALYSIS_CONCURRENCY = int(os.getenv("ANALYSIS_CONCURRENCY", "1"))
INCONCLUSIVE_FLAG = "Inconclusive evidence"

# One lock per game id: at most one analyze-and-persist in flight per game.
# Entries vanish once no run holds or waits on the lock.
_GAME_LOCKS: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()


def _game_lock(game_id: str) -> asyncio.Lock:
    lock = _GAME_LOCKS.get(game_id)
    if lock is None:
        lock = _GAME_LOCKS[game_id] = asyncio.Lock()
    return lock


async def _analyze(game_id: str, timeout: Optional[float]) -> Tuple[AnalysisResult, Framework]:
    game = await store.get_game(game_id)
    if not game:
        raise NotFoundError("Game not found")

    framework = await store.get_active_framework()
    if not framework:
        raise NotFoundError("No active framework found")

    evidence = await store.get_evidence(game_id)
    scores = await score_evidence(evidence, game["homeTeam"], game["awayTeam"], timeout=timeout)
    result = build_pick(game["homeTeam"], game["awayTeam"], framework.get("weights") or {}, scores)
    logger.info(
        "ANALYZE game=%s evidence=%d factors=%d pick=%r conf=%s-%s",
        game_id, len(evidence), len(scores), result["pick"],
        result["confidenceLow"], result["confidenceHigh"],
    )
    return result, framework


async def analyze_game(game_id: str, timeout: Optional[float] = None) -> AnalysisResult:
    """
    Score a game's evidence under the active framework. Nothing is persisted.

    Raises NotFoundError when the game or the active framework is missing.
    An empty `pick` in the result means there was nothing to score.
    """
    result, _ = await _analyze(game_id, timeout)
    return result


def why_factor_row(game_id: str, wf: WhyFactor) -> Dict[str, Any]:
    return {
        "gameId": game_id,
        "category": wf["category"],
        "featureValue": wf["featureValue"],
        "contribution": wf["contribution"],
        "description": f"[Weight: {wf['weight']:g}%] {wf['description']}",
        "keyFacts": wf["keyFacts"],
        "uncertaintyFlags": [INCONCLUSIVE_FLAG] if wf["favoredTeam"] == "neutral" else None,
        "citations": wf["citations"],
    }


async def analyze_and_update_game(game_id: str, timeout: Optional[float] = None) -> Optional[Game]:
    """
    Analyze a game and persist the outcome: pick fields + status, and a fresh
    set of why-factors replacing the previous one.
    """
    async with _game_lock(game_id):
        result, framework = await _analyze(game_id, timeout)

        if result["pick"]:
            fields = {
                "pick": result["pick"],
                "confidenceLow": result["confidenceLow"],
                "confidenceHigh": result["confidenceHigh"],
                "status": "ready",
            }
        else:
            # inconclusive: revert rather than leave a stale "ready" pick behind
            fields = {"pick": None, "confidenceLow": None, "confidenceHigh": None, "status": "pending"}
        fields["frameworkVersion"] = framework.get("version") or 1

        updated = await store.update_game(game_id, fields)
        await store.replace_why_factors(game_id, [why_factor_row(game_id, wf) for wf in result["whyFactors"]])
        return updated


async def analyze_slate(slate_id: str, concurrency: Optional[int] = None) -> List[Game]:
    """
    Analyze every game in a slate. A game that fails is logged and skipped;
    the returned list holds the successfully updated games in slate order.

    Sequential by default to bound load on the scoring service; concurrency > 1
    runs that many games at a time.
    """
    games = await store.get_games(slate_id)
    limit = max(1, concurrency or ANALYSIS_CONCURRENCY)

    async def run(game: Game) -> Optional[Game]:
        try:
            return await analyze_and_update_game(game["id"])
        except Exception as e:
            logger.exception("ANALYZE slate=%s game=%s failed: %s", slate_id, game.get("id"), e)
            return None

    if limit == 1:
        results = [await run(g) for g in games]
    else:
        sem = asyncio.Semaphore(limit)

        async def guarded(game: Game):
            async with sem:
                return await run(game)

        results = await asyncio.gather(*(guarded(g) for g in games))

    updated = [g for g in results if g]
    logger.info("ANALYZE slate=%s -> %d/%d games updated", slate_id, len(updated), len(games))
    return updated
