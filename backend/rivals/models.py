"""
Questline - Rival Models
Metric snapshots and encounter results shared by the rival simulators
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict

from pydantic import BaseModel, Field

from models import Personality, RivalRelationship, Winner


class StyleKind(str, Enum):
    """How a personality weighs the metric comparison."""
    CONSISTENCY = "consistency"
    CATEGORIES = "categories"
    GROWTH = "growth"
    VOLATILE = "volatile"


PERSONALITY_STYLES: Dict[Personality, StyleKind] = {
    Personality.MIRROR: StyleKind.CONSISTENCY,
    Personality.RIVAL: StyleKind.CATEGORIES,
    Personality.MENTOR: StyleKind.GROWTH,
    Personality.NEMESIS: StyleKind.VOLATILE,
}


class MetricSnapshot(BaseModel):
    """
    Same-shape metrics over a comparison window.

    Fitness: workouts finished, volume lifted, PRs set. The task domain maps
    completions, XP earned and on-time completions onto the same fields.
    """
    workouts: float = Field(default=0, ge=0)
    volume: float = Field(default=0, ge=0)
    prs: float = Field(default=0, ge=0)
    previous_workouts: float = Field(default=0, ge=0)
    previous_volume: float = Field(default=0, ge=0)


class CategoryResult(BaseModel):
    user: float
    rival: float
    winner: Winner


class EncounterResult(BaseModel):
    personality: Personality
    winner: Winner
    margin: float = Field(ge=0, le=100)
    dominant_factor: str
    breakdown: Dict[str, CategoryResult] = Field(default_factory=dict)
    narrative: str = ""
    chaos_factor: Optional[float] = None
    user_score: Optional[float] = None
    rival_score: Optional[float] = None


class ShowdownEntry(BaseModel):
    relationship_id: str
    rival_name: str
    result: EncounterResult
    rival_metrics: MetricSnapshot


class ShowdownSummary(BaseModel):
    ran_at: datetime
    wins: int = 0
    losses: int = 0
    ties: int = 0
    overall: str
    entries: List[ShowdownEntry] = Field(default_factory=list)
    relationships: List[RivalRelationship] = Field(default_factory=list)
