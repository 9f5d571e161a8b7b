# slatedesk/models/schemas.py
from __future__ import annotations

from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, StringConstraints, model_validator
from typing_extensions import Annotated, Literal

from slatedesk.models.types import GameStatus, SlateStatus

WeightValue = Annotated[float, Field(ge=0, le=100)]
SportKey = Literal["nfl", "ncaaf", "ncaab", "nba"]
TeamName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class PatchModel(BaseModel):
    """Partial update body. Fields in `not_null` may be omitted but not sent as null."""

    not_null: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_nulls(self):
        nulls = [f for f in self.not_null if f in self.model_fields_set and getattr(self, f) is None]
        if nulls:
            raise ValueError(f"{', '.join(nulls)} cannot be null")
        return self


# ---------------- Slates ----------------
class SlatePatch(PatchModel):
    not_null: ClassVar[Tuple[str, ...]] = ("name", "sport", "status", "gameCount")

    name: Optional[str] = None
    sport: Optional[str] = None
    status: Optional[SlateStatus] = None
    gameCount: Optional[int] = None
    frameworkId: Optional[str] = None
    screenshotUrl: Optional[str] = None
    ocrRawText: Optional[str] = None


class SlateCreate(SlatePatch):
    name: str


# ---------------- Games ----------------
class GamePatch(PatchModel):
    not_null: ClassVar[Tuple[str, ...]] = ("homeTeam", "awayTeam", "status", "isLocked", "flaggedForReview")

    homeTeam: Optional[TeamName] = None
    awayTeam: Optional[TeamName] = None
    homeTeamCanonical: Optional[str] = None
    awayTeamCanonical: Optional[str] = None
    gameTime: Optional[str] = None
    spread: Optional[float] = None
    spreadTeam: Optional[str] = None
    total: Optional[float] = None
    moneylineHome: Optional[int] = None
    moneylineAway: Optional[int] = None
    status: Optional[GameStatus] = None
    pick: Optional[str] = None
    pickLine: Optional[float] = None
    pickEdge: Optional[float] = None
    confidenceLow: Optional[float] = None
    confidenceHigh: Optional[float] = None
    isLocked: Optional[bool] = None
    overrideReason: Optional[str] = None
    notes: Optional[str] = None
    flaggedForReview: Optional[bool] = None
    frameworkVersion: Optional[int] = None


class GameCreate(GamePatch):
    homeTeam: TeamName
    awayTeam: TeamName


class GameOverride(BaseModel):
    pick: str
    pickLine: Optional[float] = None
    overrideReason: Optional[str] = None


# ---------------- Frameworks ----------------
class FrameworkPatch(PatchModel):
    not_null: ClassVar[Tuple[str, ...]] = ("name", "isActive", "weights")

    name: Optional[str] = None
    description: Optional[str] = None
    isActive: Optional[bool] = None
    weights: Optional[Dict[str, WeightValue]] = None
    changelog: Optional[str] = None


class FrameworkCreate(BaseModel):
    name: str
    description: Optional[str] = None
    version: Optional[int] = None
    isActive: Optional[bool] = None
    weights: Optional[Dict[str, WeightValue]] = None


class RuleCondition(BaseModel):
    field: str
    operator: Literal["equals", "notEquals", "greaterThan", "lessThan", "contains", "in"]
    value: Union[bool, float, str, List[str]]


class RuleAction(BaseModel):
    type: Literal["adjustConfidence", "addNote", "flag", "override"]
    value: Union[float, str]


class RulePatch(PatchModel):
    not_null: ClassVar[Tuple[str, ...]] = ("name", "condition", "action", "isEnabled", "priority")

    name: Optional[str] = None
    condition: Optional[RuleCondition] = None
    action: Optional[RuleAction] = None
    isEnabled: Optional[bool] = None
    priority: Optional[int] = None


class RuleCreate(RulePatch):
    name: str
    condition: RuleCondition
    action: RuleAction


# ---------------- Evidence / why factors ----------------
class EvidenceCreate(BaseModel):
    type: str = "news"
    category: str
    source: str
    sourceUrl: Optional[str] = None
    headline: Optional[str] = None
    snippet: Optional[str] = None
    fullContent: Optional[str] = None
    citations: Optional[List[Any]] = None
    relevanceScore: Optional[Annotated[float, Field(ge=0, le=1)]] = None


class WhyFactorCreate(BaseModel):
    category: str
    featureValue: Optional[float] = None
    contribution: Optional[float] = None
    description: Optional[str] = None
    keyFacts: Optional[List[str]] = None
    uncertaintyFlags: Optional[List[str]] = None
    citations: Optional[List[str]] = None


# ---------------- Research / OCR ----------------
class TopicRequest(BaseModel):
    topic: Optional[str] = None


class OcrImageRequest(BaseModel):
    imageBase64: Optional[str] = None


class OcrTextRequest(BaseModel):
    text: Optional[str] = None


class MatchupResearchRequest(BaseModel):
    awayTeam: str
    homeTeam: str
    sport: SportKey = "ncaaf"
    gameTime: Optional[str] = None
