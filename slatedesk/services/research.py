# slatedesk/services/research.py

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel, ValidationError

logger = logging.getLogger("slatedesk.research")

PERPLEXITY_API_URL = "https://api.perplexity.ai/chat/completions"
HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


class ResearchFinding(BaseModel):
    category: str
    headline: str
    snippet: str
    source: str
    sourceUrl: Optional[str] = None
    relevanceScore: float = 0.5
    isUncertain: bool = False
    uncertaintyReason: Optional[str] = None


# -----------------------------------------------------------
# Sport configuration
# -----------------------------------------------------------
SPORT_CONFIG = {
    "nfl": {
        "name": "NFL",
        "defaultQuery": "upcoming NFL games this week",
        "description": "National Football League",
    },
    "ncaaf": {
        "name": "NCAA Football",
        "defaultQuery": "upcoming college football games this week",
        "description": "NCAA Division I Football",
    },
    "ncaab": {
        "name": "NCAA Basketball",
        "defaultQuery": "upcoming college basketball games this week",
        "description": "NCAA Division I Men's Basketball",
    },
    "nba": {
        "name": "NBA",
        "defaultQuery": "upcoming NBA games this week",
        "description": "National Basketball Association",
    },
}


def is_research_configured() -> bool:
    return bool(os.getenv("PERPLEXITY_API_KEY"))


# -----------------------------------------------------------
# HTTP helper with retries
# -----------------------------------------------------------
async def _query_perplexity(
    messages: List[Dict[str, str]],
    max_tries: int = 2,
) -> Tuple[str, List[str]]:
    """
    POST a chat completion to Perplexity. Returns (content, citation urls).
    Raises on missing key or after the last failed attempt.
    """
    api_key = os.getenv("PERPLEXITY_API_KEY")
    if not api_key:
        raise RuntimeError("PERPLEXITY_API_KEY is not configured")

    payload = {
        "model": os.getenv("PERPLEXITY_MODEL", "sonar"),
        "messages": messages,
        "return_citations": True,
    }
    headers = {**HEADERS, "Authorization": f"Bearer {api_key}"}
    last: Optional[Exception] = None

    async with httpx.AsyncClient(timeout=60.0, headers=headers) as client:
        for attempt in range(1, max_tries + 1):
            try:
                r = await client.post(PERPLEXITY_API_URL, json=payload)
                r.raise_for_status()
                data = r.json()
                choices = data.get("choices") or [{}]
                content = ((choices[0] or {}).get("message") or {}).get("content") or ""
                citations = data.get("citations")
                urls = [c for c in citations if isinstance(c, str)] if isinstance(citations, list) else []
                return content, urls
            except Exception as e:
                last = e
                logger.warning("research attempt %s failed: %s", attempt, repr(e))
                if attempt < max_tries:
                    await asyncio.sleep(0.5 * attempt)

    raise last or RuntimeError("unknown research error")


def _extract_json(content: str) -> Dict[str, Any]:
    """First {...} block of a free-text reply; {} when there is none or it won't parse."""
    match = _JSON_BLOCK.search(content or "")
    if not match:
        return {}
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _hostname(url: str) -> str:
    return urlparse(url).hostname or url


def _list_field(parsed: Dict[str, Any], key: str) -> List[Any]:
    value = parsed.get(key)
    return value if isinstance(value, list) else []


def _shape_findings(parsed: Dict[str, Any], citations: List[str]) -> Dict[str, Any]:
    findings: List[Dict[str, Any]] = []
    for i, raw in enumerate(_list_field(parsed, "findings")):
        try:
            f = ResearchFinding.model_validate(raw)
        except ValidationError as e:
            logger.warning("research finding %s dropped: %s", i, e.errors()[:1])
            continue
        row = f.model_dump()
        # citation urls line up with findings by position
        row["sourceUrl"] = (citations[i] if i < len(citations) else None) or f.sourceUrl
        findings.append(row)

    return {
        "findings": findings,
        "citations": [{"index": i, "url": url, "title": _hostname(url)} for i, url in enumerate(citations)],
    }


# -----------------------------------------------------------
# Public API
# -----------------------------------------------------------
GAME_SYSTEM_PROMPT = """You are a college football research assistant focused on betting analysis.
Your job is to find the most relevant, recent information that could affect betting decisions.

Research these categories:
1. QB Status - Starting quarterback situation, injuries, suspensions, transfers
2. Key Injuries - Impact players out or questionable
3. Opt-Outs - Players sitting out for NFL draft
4. Coaching - New coaches, coordinator changes, recent firings
5. Motivation - Rivalry game, bowl eligibility, ranking implications
6. Recent Performance - Last 3-5 game trends

Return JSON in this exact format:
{
  "findings": [
    {
      "category": "qb|injury|portal|coaching|motivation|performance",
      "headline": "Brief headline",
      "snippet": "2-3 sentence summary with key facts",
      "source": "Source name",
      "sourceUrl": "URL or null",
      "relevanceScore": 0.0-1.0,
      "isUncertain": false,
      "uncertaintyReason": null
    }
  ],
  "citations": [
    {"index": 0, "url": "full URL", "title": "Article title"}
  ]
}

Important:
- Focus on information from the last 7 days
- Mark findings as uncertain if sources conflict or info is unverified
- Higher relevance scores (0.8-1.0) for confirmed news directly affecting the game
- Lower scores (0.3-0.6) for speculation or tangential information
- Always include source attribution"""

TOPIC_SYSTEM_PROMPT = """You are a college football research assistant.
Research the specific topic requested and return findings in JSON format:
{
  "findings": [
    {
      "category": "relevant category",
      "headline": "Brief headline",
      "snippet": "2-3 sentence summary",
      "source": "Source name",
      "sourceUrl": "URL or null",
      "relevanceScore": 0.0-1.0,
      "isUncertain": false,
      "uncertaintyReason": null
    }
  ],
  "citations": []
}"""


async def research_game(home_team: str, away_team: str) -> Dict[str, Any]:
    """
    Gather betting-relevant findings for a matchup.

    Shape:
    {
      "findings": [ {category, headline, snippet, source, sourceUrl, relevanceScore, ...} ],
      "citations": [ {index, url, title} ]
    }
    Any failure degrades to empty lists (logged).
    """
    user = f"""Research the upcoming college football game: {away_team} at {home_team}.

Find the latest information on:
1. Quarterback situation for both teams
2. Key player injuries or absences
3. Transfer portal activity and opt-outs
4. Coaching staff changes
5. Motivation factors (rivalry, bowl eligibility, rankings)
6. Recent performance trends

Prioritize information that would be relevant for betting analysis."""
    try:
        content, citations = await _query_perplexity([
            {"role": "system", "content": GAME_SYSTEM_PROMPT},
            {"role": "user", "content": user},
        ])
        out = _shape_findings(_extract_json(content), citations)
    except Exception as e:
        logger.exception("research_game failed for %s @ %s: %s", away_team, home_team, e)
        return {"findings": [], "citations": []}

    logger.info("RESEARCH %s @ %s -> %d findings", away_team, home_team, len(out["findings"]))
    return out


async def research_specific_topic(home_team: str, away_team: str, topic: str) -> Dict[str, Any]:
    try:
        content, citations = await _query_perplexity([
            {"role": "system", "content": TOPIC_SYSTEM_PROMPT},
            {"role": "user", "content": f"For the game {away_team} at {home_team}, research: {topic}"},
        ])
        return _shape_findings(_extract_json(content), citations)
    except Exception as e:
        logger.exception("research_specific_topic failed (%s): %s", topic, e)
        return {"findings": [], "citations": []}


async def search_upcoming_games(sport: str, query: Optional[str] = None) -> Dict[str, Any]:
    """Upcoming games (with lines when available) for a sport key in SPORT_CONFIG."""
    cfg = SPORT_CONFIG[sport]
    search_query = query or cfg["defaultQuery"]
    system = f"""You are a {cfg["name"]} schedule and betting information assistant.
Your job is to find upcoming {cfg["name"]} games based on the user's query.

Return JSON in this exact format:
{{
  "games": [
    {{
      "id": "unique-id-123",
      "awayTeam": "Away Team Name",
      "homeTeam": "Home Team Name",
      "gameTime": "Day, Month Date at Time ET",
      "spread": "Favorite -7.5",
      "overUnder": "Total points",
      "venue": "Stadium/Arena Name, City",
      "tvNetwork": "Broadcast network",
      "conference": "Conference/Division info",
      "notes": "Any relevant notes"
    }}
  ]
}}

Important:
- Include actual game times and dates
- Include betting lines if available (spread and over/under)
- Include TV/streaming network information
- Focus on {cfg["description"]} games
- Return up to 10 most relevant games"""
    user = f"""Find {cfg["name"]} games matching this query: "{search_query}"

Include game times, betting lines if available, TV networks, and venues."""

    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        content, citations = await _query_perplexity([
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ])
    except Exception as e:
        logger.exception("search_upcoming_games failed sport=%s: %s", sport, e)
        return {"games": [], "searchQuery": search_query, "sport": sport, "timestamp": timestamp, "sources": []}

    stamp = int(time.time() * 1000)
    games = []
    for i, g in enumerate(_list_field(_extract_json(content), "games")):
        if not isinstance(g, dict):
            continue
        games.append({**g, "id": g.get("id") or f"game-{stamp}-{i}", "sport": sport})

    return {"games": games, "searchQuery": search_query, "sport": sport, "timestamp": timestamp, "sources": citations}


async def research_matchup(
    away_team: str,
    home_team: str,
    sport: str = "ncaaf",
    game_time: Optional[str] = None,
) -> Dict[str, Any]:
    """Short bullet-point research summary for one matchup: {content, sources}."""
    cfg = SPORT_CONFIG[sport]
    extra = "Weather impact if relevant" if sport in ("nfl", "ncaaf") else "Rest days and travel"
    system = f"""You are a {cfg["name"]} betting analyst.
Provide a concise research summary for the matchup that would help with betting decisions.

Output format (strict):
- Exactly 5 bullet points (prefix each with "- ") capturing the most important insights
- Then a short 2-3 sentence explanation paragraph

Focus on:
1. Recent team performance (last 3-5 games)
2. Key player injuries or absences
3. Head-to-head history
4. Betting trends and public money
5. {extra}
6. Motivation factors

Keep it tight and actionable."""
    when = f" ({game_time})" if game_time else ""
    user = f"""Research the {cfg["name"]} matchup: {away_team} at {home_team}{when}.

Provide a betting-focused analysis with key factors that could affect the spread and total. Use the required output format."""

    try:
        content, citations = await _query_perplexity([
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ])
    except Exception as e:
        logger.exception("research_matchup failed for %s @ %s: %s", away_team, home_team, e)
        return {"content": "Research failed. Please try again.", "sources": []}

    return {"content": content or "No research data available.", "sources": citations}


def findings_to_evidence(game_id: str, research: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Evidence rows for a research result; every row carries the full citation list."""
    return [
        {
            "gameId": game_id,
            "type": "news",
            "category": f["category"],
            "source": f["source"],
            "sourceUrl": f.get("sourceUrl"),
            "headline": f["headline"],
            "snippet": f["snippet"],
            "relevanceScore": f.get("relevanceScore"),
            "citations": research.get("citations") or [],
        }
        for f in research.get("findings") or []
    ]
