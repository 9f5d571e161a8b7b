# slatedesk/services/openai_client.py
"""
OpenAI configuration shared by AI scoring and OCR.

Environment variables:
- OPENAI_API_KEY: required for any AI call
- OPENAI_BASE_URL: optional proxy / compatible endpoint
- SCORING_MODEL: model for evidence scoring (default: gpt-4o)
- SCORING_TIMEOUT: seconds before scoring falls back to the heuristic (default: 20)
- OCR_MODEL: model for slate screenshot / text extraction (default: gpt-4o)
"""

import os

import openai


def get_openai_api_key() -> str | None:
    return os.environ.get("OPENAI_API_KEY")


def is_openai_configured() -> bool:
    key = get_openai_api_key()
    return key is not None and len(key) > 0


def get_scoring_model() -> str:
    return os.environ.get("SCORING_MODEL", "gpt-4o")


def get_scoring_timeout() -> float:
    return float(os.environ.get("SCORING_TIMEOUT", "20"))


def get_ocr_model() -> str:
    return os.environ.get("OCR_MODEL", "gpt-4o")


def new_client() -> openai.AsyncOpenAI:
    return openai.AsyncOpenAI(
        api_key=get_openai_api_key(),
        base_url=os.environ.get("OPENAI_BASE_URL") or None,
    )


def strip_code_fence(content: str) -> str:
    """Models sometimes wrap JSON in ```json fences even in JSON mode."""
    content = content.strip()
    if content.startswith("```json"):
        content = content[7:]
    if content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()
