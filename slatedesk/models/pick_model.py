# slatedesk/models/pick_model.py
from __future__ import annotations

import math
from numbers import Real
from typing import Any, Dict, List, Optional, Tuple

from slatedesk.models.types import AnalysisResult, FactorScore, FavoredTeam, WhyFactor

HOME_FIELD = "homeField"
HOME_FIELD_BONUS = 1.5          # score units at 100% weight, home side only
HOME_FIELD_FEATURE_VALUE = 7
NEUTRAL_BAND = 0.05             # |net contribution| at or below this is "neutral"
MIN_MAX_DIFF = 0.1              # floor on the confidence denominator

NO_EVIDENCE_DESCRIPTION = "No specific evidence available for this factor"
INSUFFICIENT_DESCRIPTION = (
    "Insufficient evidence to make a confident recommendation. "
    "Run research to gather more data."
)


def js_round(x: float) -> int:
    """Half-up rounding (2.5 -> 3), not Python's round-half-even."""
    return math.floor(x + 0.5)


def weight_value(raw: Any) -> float:
    """Weights come from user JSON; anything non-numeric counts as 0."""
    if isinstance(raw, bool) or not isinstance(raw, Real):
        return 0
    return raw


def score_home_field(weight: float) -> Tuple[float, WhyFactor]:
    """Home field is asymmetric: a fixed bonus for the home side only."""
    bonus = (weight / 100) * HOME_FIELD_BONUS
    return bonus, {
        "category": HOME_FIELD,
        "weight": weight,
        "featureValue": HOME_FIELD_FEATURE_VALUE,
        "contribution": bonus,
        "description": "Home field advantage provides inherent edge",
        "keyFacts": ["Playing at home stadium", "Crowd support advantage"],
        "citations": [],
        "favoredTeam": "home",
    }


def _favored(net: float) -> FavoredTeam:
    if net > NEUTRAL_BAND:
        return "home"
    if net < -NEUTRAL_BAND:
        return "away"
    return "neutral"


def score_generic_factor(
    factor: str,
    weight: float,
    factor_score: Optional[FactorScore],
) -> Tuple[float, float, WhyFactor]:
    """
    Returns (home contribution, away contribution, why-factor).
    An unscored factor contributes nothing but still counts toward total
    weight (see build_pick), so missing evidence dilutes confidence.
    """
    if factor_score is None:
        return 0.0, 0.0, {
            "category": factor,
            "weight": weight,
            "featureValue": 5,
            "contribution": 0,
            "description": NO_EVIDENCE_DESCRIPTION,
            "keyFacts": [],
            "citations": [],
            "favoredTeam": "neutral",
        }

    home_c = (factor_score["homeScore"] / 10) * (weight / 100)
    away_c = (factor_score["awayScore"] / 10) * (weight / 100)
    net = home_c - away_c
    return home_c, away_c, {
        "category": factor,
        "weight": weight,
        "featureValue": (factor_score["homeScore"] + factor_score["awayScore"]) / 2,
        "contribution": net,
        "description": factor_score["reasoning"],
        "keyFacts": list(factor_score["keyFacts"]),
        "citations": list(factor_score["citations"]),
        "favoredTeam": _favored(net),
    }


def insufficient_evidence_result() -> AnalysisResult:
    """Sentinel: nothing contributed. `pick` is empty and must not be persisted as a pick."""
    return {
        "pick": "",
        "pickTeam": "home",
        "confidenceLow": 0,
        "confidenceHigh": 0,
        "whyFactors": [{
            "category": "baseline",
            "weight": 0,
            "featureValue": 5,
            "contribution": 0,
            "description": INSUFFICIENT_DESCRIPTION,
            "keyFacts": [],
            "citations": [],
            "favoredTeam": "neutral",
        }],
        "totalHomeScore": 0,
        "totalAwayScore": 0,
    }


def confidence_band(score_diff: float, total_weight: float) -> Tuple[int, int]:
    """
    The clamp order is part of the contract: base is held to [50, 90] first,
    then low is floored at 30 and high capped at 95.
    """
    max_possible_diff = total_weight / 100
    normalized = abs(score_diff) / max(max_possible_diff, MIN_MAX_DIFF)
    base = min(90, max(50, 55 + normalized * 40))
    low = js_round(max(30, base - 8))
    high = js_round(min(95, base + 8))
    return low, high


def build_pick(
    home_team: str,
    away_team: str,
    weights: Dict[str, Any],
    factor_scores: List[FactorScore],
) -> AnalysisResult:
    total_home = total_away = total_weight = 0.0
    why: List[WhyFactor] = []

    hf_weight = weight_value(weights.get(HOME_FIELD, 0))
    if hf_weight > 0:
        bonus, wf = score_home_field(hf_weight)
        total_home += bonus
        total_weight += hf_weight
        why.append(wf)

    for factor, raw in weights.items():
        weight = weight_value(raw)
        if weight == 0 or factor == HOME_FIELD:
            continue
        # exact category match; a scorer category that differs from the
        # weight key ("qb" vs "qbRating") counts as unscored
        match = next((fs for fs in factor_scores if fs["category"] == factor), None)
        home_c, away_c, wf = score_generic_factor(factor, weight, match)
        total_home += home_c
        total_away += away_c
        total_weight += weight
        why.append(wf)

    if not factor_scores and hf_weight <= 0:
        return insufficient_evidence_result()

    score_diff = total_home - total_away
    # ties go to the home team
    pick_team = "home" if score_diff >= 0 else "away"
    low, high = confidence_band(score_diff, total_weight)

    return {
        "pick": home_team if pick_team == "home" else away_team,
        "pickTeam": pick_team,
        "confidenceLow": low,
        "confidenceHigh": high,
        "whyFactors": why,
        "totalHomeScore": js_round(total_home * 100) / 100,
        "totalAwayScore": js_round(total_away * 100) / 100,
    }
