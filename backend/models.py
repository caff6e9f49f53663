"""
Questline - Pydantic Models (v2 syntax)
"""

from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional, List, Dict, Any, ClassVar, Tuple, Annotated, Union
from pydantic import BaseModel, ConfigDict, Field, AfterValidator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


Timestamp = Annotated[datetime, AfterValidator(ensure_aware)]


# ============================================
# ENUMS
# ============================================

class Domain(str, Enum):
    TASKS = "tasks"
    FITNESS = "fitness"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    EPIC = "epic"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


class RivalKind(str, Enum):
    SYNTHETIC = "synthetic-opponent"
    PEER = "peer"


class Personality(str, Enum):
    MIRROR = "mirror"
    RIVAL = "rival"
    MENTOR = "mentor"
    NEMESIS = "nemesis"


class Winner(str, Enum):
    USER = "user"
    RIVAL = "rival"
    TIE = "tie"


# ============================================
# PROFILE MODELS
# ============================================

class StreakInfo(BaseModel):
    current: int = Field(default=0, ge=0)
    longest: int = Field(default=0, ge=0)
    last_date: Optional[date] = None


class AchievementRecord(BaseModel):
    id: str
    unlocked_at: Timestamp


class Profile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = "Adventurer"
    xp: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=1)
    xp_to_next: int = 100
    total_completed: int = Field(default=0, ge=0)
    total_workouts: int = Field(default=0, ge=0)
    total_sets: int = Field(default=0, ge=0)
    total_volume: float = Field(default=0.0, ge=0)
    body_weight: Optional[float] = Field(default=None, ge=0)
    streaks: Dict[str, StreakInfo] = Field(default_factory=dict)
    achievements: List[AchievementRecord] = Field(default_factory=list)
    achievement_points: int = Field(default=0, ge=0)

    def streak(self, streak_type: str) -> StreakInfo:
        return self.streaks.get(streak_type) or StreakInfo()

    def achievement_ids(self) -> set:
        return {a.id for a in self.achievements}


class DailyStat(BaseModel):
    day: date
    completed: int = 0
    xp: int = 0


# ============================================
# ENTITY MODELS
# ============================================

class Entity(BaseModel):
    """Anything stored by id in a snapshot collection."""
    model_config = ConfigDict(extra="ignore")

    id: str
    created_at: Timestamp = Field(default_factory=utcnow)


class TrackedEntity(Entity):
    """Entity whose edits are ordered by ``updated_at`` during merges."""
    updated_at: Optional[Timestamp] = None


class Completable(TrackedEntity):
    completed: bool = False
    completed_at: Optional[Timestamp] = None
    xp_awarded: int = Field(default=0, ge=0)
    due_at: Optional[Timestamp] = None
    parent_id: Optional[str] = None


class Task(Completable):
    title: str
    description: str = ""
    tier: int = Field(default=1, ge=1, le=3)
    difficulty: Difficulty = Difficulty.MEDIUM
    effort_hours: Optional[float] = Field(default=None, ge=0)
    priority: int = 0
    project_id: Optional[str] = None
    category_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    order_index: int = 0
    was_on_time: Optional[bool] = None


class Project(TrackedEntity):
    name: str
    description: str = ""
    status: ProjectStatus = ProjectStatus.ACTIVE
    color: Optional[str] = None
    due_date: Optional[date] = None


class Category(Entity):
    name: str
    color: Optional[str] = None
    order_index: int = 0


class Workout(Completable):
    name: str = "Workout"
    started_at: Timestamp = Field(default_factory=utcnow)
    ended_at: Optional[Timestamp] = None
    notes: str = ""


class ExerciseSet(Completable):
    """A logged set. ``parent_id`` is the owning workout."""
    exercise_id: str
    weight: float = Field(default=0.0, ge=0)
    reps: int = Field(default=0, ge=0)
    rpe: Optional[float] = Field(default=None, ge=0, le=10)
    is_warmup: bool = False
    is_pr: bool = False

    @property
    def volume(self) -> float:
        return self.weight * self.reps


class RivalRelationship(TrackedEntity):
    rival_kind: RivalKind = RivalKind.SYNTHETIC
    personality: Personality = Personality.MIRROR
    name: str = ""
    character: Optional[str] = None
    peer_user_id: Optional[str] = None
    active: bool = True
    respect_level: int = Field(default=3, ge=1, le=5)
    rivalry_heat: int = Field(default=50, ge=0, le=100)
    win_streak: int = 0
    longest_win_streak: int = Field(default=0, ge=0)
    longest_lose_streak: int = Field(default=0, ge=0)
    user_wins: int = Field(default=0, ge=0)
    rival_wins: int = Field(default=0, ge=0)
    ties: int = Field(default=0, ge=0)
    encounter_count: int = Field(default=0, ge=0)
    last_encounter: Optional[Timestamp] = None
    last_winner: Optional[Winner] = None
    last_rival_metrics: Optional[Dict[str, float]] = None


# ============================================
# SNAPSHOT MODELS
# ============================================

class Snapshot(BaseModel):
    """Full state of one domain, the unit of sync."""
    model_config = ConfigDict(extra="ignore")

    ENTITY_COLLECTIONS: ClassVar[Tuple[str, ...]] = ()
    COLLECTION_TYPES: ClassVar[Dict[str, type]] = {}

    profile: Profile = Field(default_factory=Profile)
    daily_stats: Dict[str, DailyStat] = Field(default_factory=dict)

    def collection(self, kind: str) -> list:
        if kind not in self.ENTITY_COLLECTIONS:
            raise ValueError(f"Unknown collection '{kind}' for {type(self).__name__}")
        return getattr(self, kind)

    def completables(self) -> List[Completable]:
        units: List[Completable] = []
        for kind in self.ENTITY_COLLECTIONS:
            units.extend(e for e in getattr(self, kind) if isinstance(e, Completable))
        return units


class TaskSnapshot(Snapshot):
    ENTITY_COLLECTIONS: ClassVar[Tuple[str, ...]] = ("tasks", "projects", "categories")
    COLLECTION_TYPES: ClassVar[Dict[str, type]] = {
        "tasks": Task,
        "projects": Project,
        "categories": Category,
    }

    tasks: List[Task] = Field(default_factory=list)
    projects: List[Project] = Field(default_factory=list)
    categories: List[Category] = Field(default_factory=list)


class FitnessSnapshot(Snapshot):
    ENTITY_COLLECTIONS: ClassVar[Tuple[str, ...]] = ("workouts", "sets", "rivals")
    COLLECTION_TYPES: ClassVar[Dict[str, type]] = {
        "workouts": Workout,
        "sets": ExerciseSet,
        "rivals": RivalRelationship,
    }

    workouts: List[Workout] = Field(default_factory=list)
    sets: List[ExerciseSet] = Field(default_factory=list)
    rivals: List[RivalRelationship] = Field(default_factory=list)
    records: Dict[str, float] = Field(default_factory=dict)


SNAPSHOT_TYPES: Dict[Domain, type] = {
    Domain.TASKS: TaskSnapshot,
    Domain.FITNESS: FitnessSnapshot,
}


def empty_snapshot(domain: Domain) -> Snapshot:
    return SNAPSHOT_TYPES[Domain(domain)]()


def parse_snapshot(domain: Domain, data: Dict[str, Any]) -> Snapshot:
    return SNAPSHOT_TYPES[Domain(domain)].model_validate(data)


# ============================================
# SYNC MODELS
# ============================================

class SyncEnvelope(BaseModel):
    data: Dict[str, Any]
    updated_at: Timestamp


class SyncState(BaseModel):
    pending_sync: bool = False
    last_synced_at: Optional[Timestamp] = None
    status: SyncStatus = SyncStatus.IDLE
    error: Optional[str] = None
    retry_count: int = 0
    revision: int = 0


class SyncPushRequest(BaseModel):
    data: Dict[str, Any]


class SyncPushResponse(BaseModel):
    updated_at: Timestamp


class XPAwardRequest(BaseModel):
    domain: Domain
    action: str
    xp_amount: int = Field(ge=0)
    unit_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class XPAwardResponse(BaseModel):
    total_xp: int
    achievements: List[str] = Field(default_factory=list)


class HealthStatus(BaseModel):
    status: str
    version: str
    database: str


# ============================================
# EFFECT MODELS
# ============================================

class PushMode(str, Enum):
    DEBOUNCED = "debounced"
    IMMEDIATE = "immediate"


class PushEffect(BaseModel):
    domain: Domain
    mode: PushMode = PushMode.DEBOUNCED


class PullEffect(BaseModel):
    domain: Domain
    force_refresh: bool = False


class AwardEffect(BaseModel):
    """Report a completion to the award service (pre-streak XP)."""
    domain: Domain
    action: str
    xp_amount: int
    unit_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


Effect = Union[PushEffect, PullEffect, AwardEffect]


class Outcome(BaseModel):
    """Result of a command plus the side effects the caller must dispatch."""
    result: Any = None
    effects: List[Effect] = Field(default_factory=list)
    xp_delta: int = 0
    level_change: int = 0
    unlocked: List[str] = Field(default_factory=list)
