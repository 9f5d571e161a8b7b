# slatedesk/services/ocr.py
"""
Slate extraction from sportsbook screenshots or pasted text via OpenAI.

Both entry points return an OCRResult: the games found (teams, spread,
total, moneylines, start time) plus the raw text the model read.
"""

import json
import logging
from typing import List, Optional

import openai
from pydantic import BaseModel, ValidationError

from slatedesk.services.openai_client import get_ocr_model, is_openai_configured, new_client, strip_code_fence

logger = logging.getLogger("slatedesk.ocr")


class ExtractedGame(BaseModel):
    homeTeam: str
    awayTeam: str
    spread: Optional[float] = None
    spreadTeam: Optional[str] = None
    total: Optional[float] = None
    moneylineHome: Optional[int] = None
    moneylineAway: Optional[int] = None
    gameTime: Optional[str] = None


class OCRResult(BaseModel):
    games: List[ExtractedGame]
    rawText: str = ""


class OCRExtractionError(Exception):
    """Extraction failed: no key, API error, or a reply that isn't the expected JSON."""


_FORMAT = """Return JSON in this exact format:
{
  "games": [
    {
      "homeTeam": "Team Name",
      "awayTeam": "Team Name",
      "spread": -3.5,
      "spreadTeam": "Team Name",
      "total": 45.5,
      "moneylineHome": -150,
      "moneylineAway": 130,
      "gameTime": "2024-01-15T15:30:00Z"
    }
  ],
  "rawText": "%s"
}"""

_FIELDS = """For each game, identify:
- Home team and away team names
- Point spread (positive number with the team it's for)
- Total points (over/under line)
- Moneyline odds for both teams
- Game time if visible"""

IMAGE_PROMPT = f"""You are an expert at extracting college football betting information from screenshots.
Extract all games shown in the image. {_FIELDS}

{_FORMAT % "Raw OCR text from the image"}

Important:
- Spreads are stored as the line value (e.g., -3.5 means the spreadTeam is favored by 3.5)
- Moneyline values should be integers (e.g., -150, 130)
- Game times should be ISO format or null if not visible
- If a value cannot be determined, use null"""

TEXT_PROMPT = f"""You are an expert at extracting college football betting information.
Parse the provided text and extract all games. {_FIELDS}

{_FORMAT % "Original text provided"}"""


async def _extract(messages: list) -> OCRResult:
    if not is_openai_configured():
        raise OCRExtractionError("OpenAI API key not configured")

    try:
        async with new_client() as client:
            response = await client.chat.completions.create(
                model=get_ocr_model(),
                messages=messages,
                response_format={"type": "json_object"},
                max_tokens=4000,
                temperature=0.1,
            )
    except openai.APIError as e:
        logger.error("OpenAI API error: %s", e)
        raise OCRExtractionError(f"OpenAI API error: {e}")

    content = response.choices[0].message.content
    if not content:
        raise OCRExtractionError("Empty response from OpenAI")

    try:
        return OCRResult.model_validate(json.loads(strip_code_fence(content)))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error("OCR reply did not match schema: %s", e)
        raise OCRExtractionError(f"Invalid extraction response: {e}")


async def extract_games_from_image(image_base64: str) -> OCRResult:
    result = await _extract([
        {"role": "system", "content": IMAGE_PROMPT},
        {
            "role": "user",
            "content": [
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:image/png;base64,{image_base64}", "detail": "high"},
                },
                {"type": "text", "text": "Extract all college football games and betting lines from this image."},
            ],
        },
    ])
    logger.info("OCR image -> %d games", len(result.games))
    return result


async def extract_games_from_text(text: str) -> OCRResult:
    result = await _extract([
        {"role": "system", "content": TEXT_PROMPT},
        {"role": "user", "content": text},
    ])
    logger.info("OCR text -> %d games", len(result.games))
    return result
