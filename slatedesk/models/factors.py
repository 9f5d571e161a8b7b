# slatedesk/models/factors.py
from __future__ import annotations

from typing import Dict, List, Optional

from slatedesk.models.types import Evidence

# Known factor set and its default weights (percent). Display/defaults only:
# the pick model iterates whatever keys a framework's weights carry.
DEFAULT_WEIGHTS: Dict[str, float] = {
    "qbRating": 20,
    "defense": 20,
    "strengthOfSchedule": 15,
    "motivation": 15,
    "marketMovement": 10,
    "homeField": 10,
    "injuries": 10,
}
KNOWN_FACTORS = tuple(DEFAULT_WEIGHTS)

# Factors the AI scorer is asked to evaluate.
AI_FACTORS = ("qbRating", "defense", "injuries", "strengthOfSchedule", "motivation", "portal", "coaching")

# Evidence category keyword -> factor. Order matters: first match wins.
FACTOR_KEYWORDS: Dict[str, List[str]] = {
    "qbRating": ["qb", "quarterback"],
    "defense": ["defense", "defensive"],
    "injuries": ["injury", "injuries"],
    "strengthOfSchedule": ["sos", "schedule"],
    "homeField": ["home", "homefield"],
    "motivation": ["motivation", "rivalry"],
    "portal": ["portal", "transfer"],
    "coaching": ["coaching", "coach"],
    "weather": ["weather"],
    "marketMovement": ["market", "odds", "line"],
}

GENERAL_CATEGORY = "general"


def categorize(evidence: List[Evidence]) -> Dict[str, List[Evidence]]:
    """
    Group evidence by lower-cased category ("general" when missing).
    Groups keep first-seen order; items inside a group keep input order.
    """
    out: Dict[str, List[Evidence]] = {}
    for ev in evidence:
        category = (ev.get("category") or "").lower() or GENERAL_CATEGORY
        out.setdefault(category, []).append(ev)
    return out


def map_category_to_factor(category: str) -> Optional[str]:
    """Substring keyword match, case-insensitive. None when nothing matches."""
    cat = (category or "").lower()
    for factor, keywords in FACTOR_KEYWORDS.items():
        if any(kw in cat for kw in keywords):
            return factor
    return None
