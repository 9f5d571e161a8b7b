# slatedesk/models/types.py
from typing import Dict, List, Optional

from typing_extensions import Literal, TypedDict

GameStatus = Literal["pending", "enriching", "ready", "locked", "override"]
SlateStatus = Literal["draft", "enriching", "ready", "exported"]
FavoredTeam = Literal["home", "away", "neutral"]
PickSide = Literal["home", "away"]

# factor name -> percentage weight (0..100); any factor name is allowed
Weights = Dict[str, float]


class Game(TypedDict, total=False):
    id: str
    slateId: str
    homeTeam: str
    awayTeam: str
    homeTeamCanonical: Optional[str]
    awayTeamCanonical: Optional[str]
    gameTime: Optional[str]
    spread: Optional[float]
    spreadTeam: Optional[str]
    total: Optional[float]
    moneylineHome: Optional[int]
    moneylineAway: Optional[int]
    status: GameStatus
    pick: Optional[str]
    pickLine: Optional[float]
    pickEdge: Optional[float]
    confidenceLow: Optional[float]
    confidenceHigh: Optional[float]
    isLocked: bool
    frameworkVersion: Optional[int]


class Evidence(TypedDict, total=False):
    id: str
    gameId: str
    type: str
    category: Optional[str]
    source: Optional[str]
    sourceUrl: Optional[str]
    headline: Optional[str]
    snippet: Optional[str]
    fullContent: Optional[str]
    relevanceScore: Optional[float]
    citations: Optional[list]


class Framework(TypedDict, total=False):
    id: str
    name: str
    version: int
    isActive: bool
    weights: Weights


class FactorScore(TypedDict):
    category: str
    homeScore: float
    awayScore: float
    reasoning: str
    keyFacts: List[str]
    citations: List[str]


class WhyFactor(TypedDict):
    category: str
    weight: float
    featureValue: float
    contribution: float
    description: str
    keyFacts: List[str]
    citations: List[str]
    favoredTeam: FavoredTeam


class AnalysisResult(TypedDict):
    pick: str
    pickTeam: PickSide
    confidenceLow: int
    confidenceHigh: int
    whyFactors: List[WhyFactor]
    totalHomeScore: float
    totalAwayScore: float
