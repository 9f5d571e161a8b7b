# slatedesk/services/ai_scoring.py
from __future__ import annotations

import asyncio
import json
import logging
from numbers import Real
from typing import Any, List, NamedTuple, Optional

from slatedesk.models.factors import AI_FACTORS
from slatedesk.models.heuristic import clamp_score, evidence_text, heuristic_score, NEUTRAL_SCORE
from slatedesk.models.types import Evidence, FactorScore
from slatedesk.services.openai_client import (
    get_scoring_model,
    get_scoring_timeout,
    is_openai_configured,
    new_client,
    strip_code_fence,
)

logger = logging.getLogger("slatedesk.scoring")

MAX_PROMPT_ITEMS = 20
MAX_ITEM_CHARS = 500

SYSTEM_PROMPT = (
    "You are an objective sports analyst. Score evidence fairly based on what it "
    "actually says, not assumptions."
)


class AIScoring(NamedTuple):
    """Outcome of the AI scoring call. `error` is set instead of raising."""

    scores: List[FactorScore]
    error: Optional[str] = None


def build_prompt(evidence: List[Evidence], home_team: str, away_team: str) -> str:
    lines = []
    for i, ev in enumerate(evidence[:MAX_PROMPT_ITEMS], start=1):
        body = evidence_text(ev)[:MAX_ITEM_CHARS]
        lines.append(f"{i}. [{ev.get('category')}] {body} (Source: {ev.get('source')})")
    evidence_block = "\n\n".join(lines)

    return f"""Analyze the following evidence for the game: {away_team} @ {home_team}

EVIDENCE:
{evidence_block}

For each relevant factor category, score how much the evidence favors each team on a scale of 0-10:
- 0 = strongly favors away team
- 5 = neutral/equal
- 10 = strongly favors home team

Return JSON with this exact format:
{{
  "factors": [
    {{
      "category": "qbRating",
      "homeScore": 0-10,
      "awayScore": 0-10,
      "reasoning": "Brief explanation",
      "keyFacts": ["fact 1", "fact 2"],
      "citations": ["Source 1", "Source 2"]
    }}
  ]
}}

Categories to evaluate: {", ".join(AI_FACTORS)}
Only include categories where evidence exists. Be objective and evidence-based."""


def _score(v: Any) -> float:
    if isinstance(v, bool) or not isinstance(v, Real) or v != v:
        return NEUTRAL_SCORE
    return clamp_score(float(v))


def _str_list(v: Any) -> List[str]:
    return [str(x) for x in v] if isinstance(v, list) else []


def parse_factor_scores(content: str) -> List[FactorScore]:
    """Raises ValueError when the reply is not the expected JSON shape."""
    result = json.loads(strip_code_fence(content or "{}"))
    if not isinstance(result, dict):
        raise ValueError("scoring reply is not a JSON object")
    factors = result.get("factors") or []
    if not isinstance(factors, list):
        raise ValueError("scoring reply 'factors' is not a list")

    out: List[FactorScore] = []
    for f in factors:
        if not isinstance(f, dict):
            continue
        out.append({
            "category": f.get("category") or "general",
            "homeScore": _score(f.get("homeScore")),
            "awayScore": _score(f.get("awayScore")),
            "reasoning": f.get("reasoning") or "",
            "keyFacts": _str_list(f.get("keyFacts")),
            "citations": _str_list(f.get("citations")),
        })
    return out


async def _complete_json(system: str, user: str) -> str:
    async with new_client() as client:
        response = await client.chat.completions.create(
            model=get_scoring_model(),
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=0.2,
            response_format={"type": "json_object"},
        )
    return response.choices[0].message.content or "{}"


async def score_with_ai(
    evidence: List[Evidence],
    home_team: str,
    away_team: str,
    timeout: Optional[float] = None,
) -> AIScoring:
    if not is_openai_configured():
        return AIScoring([], "OPENAI_API_KEY not configured")

    timeout = get_scoring_timeout() if timeout is None else timeout
    prompt = build_prompt(evidence, home_team, away_team)
    try:
        content = await asyncio.wait_for(_complete_json(SYSTEM_PROMPT, prompt), timeout=timeout)
        return AIScoring(parse_factor_scores(content))
    except asyncio.TimeoutError:
        return AIScoring([], f"timed out after {timeout}s")
    except Exception as e:
        return AIScoring([], repr(e))


async def score_evidence(
    evidence: List[Evidence],
    home_team: str,
    away_team: str,
    timeout: Optional[float] = None,
) -> List[FactorScore]:
    """
    Per-factor home/away scores for a game's evidence.

    AI scoring first; any failure (no key, network, timeout, bad JSON) falls
    back to the deterministic heuristic. Empty evidence scores nothing.
    """
    if not evidence:
        return []

    ai = await score_with_ai(evidence, home_team, away_team, timeout=timeout)
    if ai.error is None:
        return ai.scores

    logger.warning("AI scoring unavailable (%s); using heuristic for %s @ %s", ai.error, away_team, home_team)
    return heuristic_score(evidence, home_team, away_team)
