# slatedesk/models/heuristic.py
from __future__ import annotations

import re
from typing import List

from slatedesk.models.factors import categorize, map_category_to_factor
from slatedesk.models.types import Evidence, FactorScore

NEUTRAL_SCORE = 5.0
MAX_FACTS = 3

# Plain substring cues, not word-bounded ("out" also hits "without").
POSITIVE_RE = re.compile(r"strong|excellent|advantage|dominant|leading|top|best|improved|healthy|returning|win", re.I)
NEGATIVE_RE = re.compile(r"weak|poor|struggling|injury|injured|out|missing|loss|concern|problem|questionable", re.I)


def clamp_score(value: float) -> float:
    return min(10.0, max(0.0, value))


def evidence_text(ev: Evidence) -> str:
    return ev.get("fullContent") or ev.get("snippet") or ev.get("headline") or ""


def _push_distinct(bucket: List[str], value: str | None):
    if value and value not in bucket and len(bucket) < MAX_FACTS:
        bucket.append(value)


def heuristic_score(evidence: List[Evidence], home_team: str, away_team: str) -> List[FactorScore]:
    """
    Deterministic keyword scoring, one FactorScore per evidence category that
    maps to a factor.

    Each side starts neutral (5). An item that names exactly one team moves
    that team's score +1 on a positive cue and -1 on a negative cue (both can
    fire). Scores are clamped to [0, 10] once the group is done.
    """
    home = (home_team or "").lower()
    away = (away_team or "").lower()
    scores: List[FactorScore] = []

    for category, items in categorize(evidence).items():
        home_score = away_score = NEUTRAL_SCORE
        key_facts: List[str] = []
        citations: List[str] = []

        for ev in items:
            content = evidence_text(ev).lower()
            mentions_home = bool(home) and home in content
            mentions_away = bool(away) and away in content
            delta = (1 if POSITIVE_RE.search(content) else 0) - (1 if NEGATIVE_RE.search(content) else 0)

            if mentions_home and not mentions_away:
                home_score += delta
            elif mentions_away and not mentions_home:
                away_score += delta

            _push_distinct(key_facts, ev.get("headline"))
            _push_distinct(citations, ev.get("source"))

        factor = map_category_to_factor(category)
        if not factor:
            continue
        scores.append({
            "category": factor,
            "homeScore": clamp_score(home_score),
            "awayScore": clamp_score(away_score),
            "reasoning": f"Based on {len(items)} evidence items in {category}",
            "keyFacts": key_facts,
            "citations": citations,
        })

    return scores
