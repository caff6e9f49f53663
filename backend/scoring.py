"""
Questline - Scoring Engine
Deterministic XP for completion events
"""

import math
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from config import get_scoring_config, ScoringConfig
from models import Completable, Task, Workout, ExerciseSet, Difficulty, Timestamp, utcnow


# ============================================
# EXERCISE TABLES
# ============================================

# Tier 1: major compounds, tier 2: secondary compounds, everything else is tier 3
EXERCISE_TIERS = {
    1: frozenset({"bench", "squat", "deadlift", "ohp"}),
    2: frozenset({"rows", "pullups", "chinups", "dip", "legpress", "rdl", "hip_thrust"}),
}

# Volume of these includes the user's body weight
BODYWEIGHT_EXERCISES = frozenset({
    "pushups", "dips_chest", "dip", "bench_dip", "pullups", "chinups",
    "tricep_dips", "diamond_pushup", "lunges", "plank", "leg_raise",
    "crunches", "russian_twist", "dead_bug", "decline_situp",
    "glute_bridge", "nordic_curl", "hyperextension",
})


# ============================================
# MODELS
# ============================================

class ScoringContext(BaseModel):
    """Inputs to a score besides the unit itself."""
    now: Timestamp = Field(default_factory=utcnow)
    # Streak value before this completion advances it
    streak: int = Field(default=0, ge=0)
    body_weight: Optional[float] = Field(default=None, ge=0)


class ScoreBreakdown(BaseModel):
    base: float
    tier: float
    difficulty: float
    effort: float
    punctuality: float
    streak: float
    on_time: Optional[bool] = None
    award_xp: int
    xp: int


# ============================================
# MULTIPLIERS
# ============================================

def exercise_tier(exercise_id: str) -> int:
    for tier, exercises in EXERCISE_TIERS.items():
        if exercise_id in exercises:
            return tier
    return 3


def effort_multiplier(hours: Optional[float]) -> float:
    """0.25h = 1x, 1h = 2x, 4h = 3x; unknown effort scores as the minimum."""
    if not hours:
        return 1.0
    return max(1.0, 1 + math.log2(max(0.25, hours) * 4) * 0.5)


def streak_multiplier(streak: int, config: Optional[ScoringConfig] = None) -> float:
    config = config or get_scoring_config()
    return min(1 + max(0, streak) * config.streak_bonus_per_day, config.max_streak_multiplier)


def is_on_time(due_at: Optional[datetime], completed_at: datetime) -> Optional[bool]:
    """None when the unit has no due time."""
    if due_at is None:
        return None
    return completed_at <= due_at


def effective_weight(unit: ExerciseSet, body_weight: Optional[float]) -> float:
    if body_weight and unit.exercise_id in BODYWEIGHT_EXERCISES:
        return unit.weight + body_weight
    return unit.weight


def _floor(value: float) -> int:
    # Absorb float noise (e.g. 89.99999999) before flooring
    return int(math.floor(round(value, 6)))


# ============================================
# SCORING
# ============================================

def score_breakdown(
    unit: Completable,
    context: ScoringContext,
    config: Optional[ScoringConfig] = None,
) -> ScoreBreakdown:
    """
    Compute every multiplier for a completion.

    xp = floor(base × tier × difficulty × effort × punctuality × streak),
    with the floor taken once at the end. ``award_xp`` is the same product
    without the streak multiplier, which is what the award service records.
    """
    config = config or get_scoring_config()
    tier = difficulty = effort = 1.0

    if isinstance(unit, Task):
        base = float(config.base_xp)
        tier = config.task_tier_multipliers.get(unit.tier, 1.0)
        difficulty = config.difficulty_multipliers.get(
            Difficulty(unit.difficulty).value,
            config.difficulty_multipliers.get(Difficulty.MEDIUM.value, 1.0),
        )
        effort = effort_multiplier(unit.effort_hours)
    elif isinstance(unit, ExerciseSet):
        if unit.is_warmup:
            base = 0.0
        else:
            base = effective_weight(unit, context.body_weight) * unit.reps / 10
        tier = config.exercise_tier_multipliers.get(exercise_tier(unit.exercise_id), 1.0)
    elif isinstance(unit, Workout):
        base = float(config.workout_completion_xp)
    else:
        base = float(config.base_xp)

    on_time = is_on_time(unit.due_at, context.now)
    punctuality = config.on_time_bonus if on_time else 1.0
    streak = streak_multiplier(context.streak, config)

    pre_streak = base * tier * difficulty * effort * punctuality
    return ScoreBreakdown(
        base=base,
        tier=tier,
        difficulty=difficulty,
        effort=effort,
        punctuality=punctuality,
        streak=streak,
        on_time=on_time,
        award_xp=_floor(pre_streak),
        xp=_floor(pre_streak * streak),
    )


def score_completion(
    unit: Completable,
    context: ScoringContext,
    config: Optional[ScoringConfig] = None,
) -> int:
    """XP for completing ``unit`` under ``context``."""
    return score_breakdown(unit, context, config).xp


def reverse_award(unit: Completable) -> int:
    """XP to remove when a completion is undone: exactly what was frozen on it."""
    return unit.xp_awarded


def preview_xp(
    task: Task,
    streak: int,
    now: Optional[datetime] = None,
    config: Optional[ScoringConfig] = None,
) -> int:
    """Estimate shown before completion; a future due date is assumed to be met."""
    now = now or utcnow()
    context = ScoringContext(now=now, streak=streak)
    if task.due_at is not None and task.due_at >= now:
        context = ScoringContext(now=task.due_at, streak=streak)
    return score_completion(task, context, config)
