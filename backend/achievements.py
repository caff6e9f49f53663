"""
Questline - Achievement Evaluator
Declarative unlock rules over profile aggregates and completed units
"""

from datetime import datetime
from typing import Optional, List, Dict, Any, Callable, Iterable, Sequence
from pydantic import BaseModel
from enum import Enum

from models import (
    Domain, Profile, AchievementRecord, Completable, Task, Workout, ExerciseSet,
    Difficulty, utcnow,
)
from logger import logger


# ============================================
# ENUMS
# ============================================

class AchievementRarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class AchievementCategory(str, Enum):
    STREAK = "streak"
    TASKS = "tasks"
    LEVEL = "level"
    WORKOUT = "workout"
    STRENGTH = "strength"
    SPECIAL = "special"


# ============================================
# PYDANTIC MODELS
# ============================================

class Achievement(BaseModel):
    code: str
    domain: Domain
    name: str
    description: str
    icon: str
    category: AchievementCategory
    metric: str
    threshold_value: float
    points: int
    rarity: AchievementRarity


class AchievementProgress(BaseModel):
    achievement: Achievement
    current_value: float
    target_value: float
    percentage: float
    is_complete: bool


# ============================================
# METRICS
# ============================================

def _completed(units: Iterable[Completable], kind: type) -> List[Any]:
    return [u for u in units if isinstance(u, kind) and u.completed]


def _max_lift(exercise_id: str) -> Callable[[Profile, Sequence[Completable]], float]:
    def metric(profile: Profile, units: Sequence[Completable]) -> float:
        weights = [
            s.weight for s in _completed(units, ExerciseSet)
            if s.exercise_id == exercise_id and not s.is_warmup
        ]
        return max(weights, default=0)
    return metric


# Each metric maps (profile, units) to a number compared against threshold_value
METRICS: Dict[str, Callable[[Profile, Sequence[Completable]], float]] = {
    "total_completed": lambda p, u: p.total_completed,
    "level": lambda p, u: p.level,
    "longest_daily_streak": lambda p, u: p.streak("daily").longest,
    "longest_workout_streak": lambda p, u: p.streak("workout").longest,
    "epic_tasks": lambda p, u: sum(
        1 for t in _completed(u, Task) if Difficulty(t.difficulty) == Difficulty.EPIC
    ),
    "major_tasks": lambda p, u: sum(1 for t in _completed(u, Task) if t.tier >= 3),
    "on_time_tasks": lambda p, u: sum(1 for t in _completed(u, Task) if t.was_on_time),
    "total_workouts": lambda p, u: p.total_workouts,
    "total_volume": lambda p, u: p.total_volume,
    "pr_count": lambda p, u: sum(1 for s in _completed(u, ExerciseSet) if s.is_pr),
    "finished_workouts": lambda p, u: len(_completed(u, Workout)),
    "max_bench": _max_lift("bench"),
    "max_squat": _max_lift("squat"),
    "max_deadlift": _max_lift("deadlift"),
}


# ============================================
# ACHIEVEMENT DEFINITIONS
# ============================================

ACHIEVEMENT_DEFINITIONS = {
    # Task achievements
    "first-task": {
        "domain": "tasks", "name": "First Steps", "description": "Complete your first task",
        "icon": "check", "category": "tasks", "metric": "total_completed",
        "threshold_value": 1, "points": 50, "rarity": "common"
    },
    "task-10": {
        "domain": "tasks", "name": "Getting Started", "description": "Complete 10 tasks",
        "icon": "check-square", "category": "tasks", "metric": "total_completed",
        "threshold_value": 10, "points": 100, "rarity": "common"
    },
    "task-50": {
        "domain": "tasks", "name": "Productive", "description": "Complete 50 tasks",
        "icon": "list-checks", "category": "tasks", "metric": "total_completed",
        "threshold_value": 50, "points": 250, "rarity": "rare"
    },
    "task-100": {
        "domain": "tasks", "name": "Century", "description": "Complete 100 tasks",
        "icon": "trophy", "category": "tasks", "metric": "total_completed",
        "threshold_value": 100, "points": 500, "rarity": "rare"
    },
    "task-500": {
        "domain": "tasks", "name": "Task Master", "description": "Complete 500 tasks",
        "icon": "crown", "category": "tasks", "metric": "total_completed",
        "threshold_value": 500, "points": 1000, "rarity": "legendary"
    },
    # Streak achievements
    "streak-3": {
        "domain": "tasks", "name": "On a Roll", "description": "Reach a 3-day streak",
        "icon": "fire", "category": "streak", "metric": "longest_daily_streak",
        "threshold_value": 3, "points": 75, "rarity": "common"
    },
    "streak-7": {
        "domain": "tasks", "name": "Week Warrior", "description": "Reach a 7-day streak",
        "icon": "flame", "category": "streak", "metric": "longest_daily_streak",
        "threshold_value": 7, "points": 150, "rarity": "common"
    },
    "streak-14": {
        "domain": "tasks", "name": "Two Week Champion", "description": "Reach a 14-day streak",
        "icon": "calendar", "category": "streak", "metric": "longest_daily_streak",
        "threshold_value": 14, "points": 300, "rarity": "rare"
    },
    "streak-30": {
        "domain": "tasks", "name": "Monthly Master", "description": "Reach a 30-day streak",
        "icon": "calendar-check", "category": "streak", "metric": "longest_daily_streak",
        "threshold_value": 30, "points": 750, "rarity": "epic"
    },
    # Level achievements
    "level-5": {
        "domain": "tasks", "name": "Apprentice", "description": "Reach level 5",
        "icon": "star", "category": "level", "metric": "level",
        "threshold_value": 5, "points": 100, "rarity": "common"
    },
    "level-10": {
        "domain": "tasks", "name": "Journeyman", "description": "Reach level 10",
        "icon": "stars", "category": "level", "metric": "level",
        "threshold_value": 10, "points": 200, "rarity": "rare"
    },
    "level-25": {
        "domain": "tasks", "name": "Expert", "description": "Reach level 25",
        "icon": "medal", "category": "level", "metric": "level",
        "threshold_value": 25, "points": 500, "rarity": "epic"
    },
    "level-50": {
        "domain": "tasks", "name": "Legend", "description": "Reach level 50",
        "icon": "gem", "category": "level", "metric": "level",
        "threshold_value": 50, "points": 1000, "rarity": "legendary"
    },
    # Special task achievements
    "epic-task": {
        "domain": "tasks", "name": "Epic Victory", "description": "Complete an Epic difficulty task",
        "icon": "sword", "category": "special", "metric": "epic_tasks",
        "threshold_value": 1, "points": 100, "rarity": "rare"
    },
    "major-task": {
        "domain": "tasks", "name": "Major Achievement", "description": "Complete a top tier task",
        "icon": "mountain", "category": "special", "metric": "major_tasks",
        "threshold_value": 1, "points": 100, "rarity": "rare"
    },
    "punctual-25": {
        "domain": "tasks", "name": "Clockwork", "description": "Finish 25 tasks before they were due",
        "icon": "clock", "category": "special", "metric": "on_time_tasks",
        "threshold_value": 25, "points": 250, "rarity": "rare"
    },
    # Workout achievements
    "first-workout": {
        "domain": "fitness", "name": "Newcomer", "description": "Complete your first workout",
        "icon": "dumbbell", "category": "workout", "metric": "total_workouts",
        "threshold_value": 1, "points": 50, "rarity": "common"
    },
    "workouts-10": {
        "domain": "fitness", "name": "Gym Regular", "description": "Complete 10 workouts",
        "icon": "activity", "category": "workout", "metric": "total_workouts",
        "threshold_value": 10, "points": 100, "rarity": "common"
    },
    "workouts-50": {
        "domain": "fitness", "name": "Iron Warrior", "description": "Complete 50 workouts",
        "icon": "shield", "category": "workout", "metric": "total_workouts",
        "threshold_value": 50, "points": 300, "rarity": "rare"
    },
    "workouts-100": {
        "domain": "fitness", "name": "Centurion", "description": "Complete 100 workouts",
        "icon": "crown", "category": "workout", "metric": "total_workouts",
        "threshold_value": 100, "points": 750, "rarity": "epic"
    },
    "workout-streak-7": {
        "domain": "fitness", "name": "Consistent", "description": "Train 7 days in a row",
        "icon": "flame", "category": "streak", "metric": "longest_workout_streak",
        "threshold_value": 7, "points": 150, "rarity": "rare"
    },
    "first-pr": {
        "domain": "fitness", "name": "New Heights", "description": "Set your first personal record",
        "icon": "trending-up", "category": "strength", "metric": "pr_count",
        "threshold_value": 1, "points": 50, "rarity": "common"
    },
    "pr-10": {
        "domain": "fitness", "name": "PR Hunter", "description": "Set 10 personal records",
        "icon": "target", "category": "strength", "metric": "pr_count",
        "threshold_value": 10, "points": 200, "rarity": "rare"
    },
    "volume-100k": {
        "domain": "fitness", "name": "Heavy Lifter", "description": "Move 100,000 lbs in total",
        "icon": "weight", "category": "strength", "metric": "total_volume",
        "threshold_value": 100000, "points": 250, "rarity": "rare"
    },
    "volume-1m": {
        "domain": "fitness", "name": "Million Pound Club", "description": "Move 1,000,000 lbs in total",
        "icon": "mountain", "category": "strength", "metric": "total_volume",
        "threshold_value": 1000000, "points": 1000, "rarity": "legendary"
    },
    "bench-135": {
        "domain": "fitness", "name": "One Plate Club", "description": "Bench press 135 lbs",
        "icon": "award", "category": "strength", "metric": "max_bench",
        "threshold_value": 135, "points": 100, "rarity": "common"
    },
    "squat-225": {
        "domain": "fitness", "name": "Two Plate Squatter", "description": "Squat 225 lbs",
        "icon": "award", "category": "strength", "metric": "max_squat",
        "threshold_value": 225, "points": 150, "rarity": "rare"
    },
    "deadlift-315": {
        "domain": "fitness", "name": "Three Plate Puller", "description": "Deadlift 315 lbs",
        "icon": "award", "category": "strength", "metric": "max_deadlift",
        "threshold_value": 315, "points": 200, "rarity": "rare"
    },
}


def get_definitions(domain: Optional[Domain] = None) -> List[Achievement]:
    definitions = [Achievement(code=code, **data) for code, data in ACHIEVEMENT_DEFINITIONS.items()]
    if domain is None:
        return definitions
    return [a for a in definitions if a.domain == Domain(domain)]


def points_for(code: str) -> int:
    definition = ACHIEVEMENT_DEFINITIONS.get(code)
    return definition["points"] if definition else 0


# ============================================
# ACHIEVEMENT CHECKER
# ============================================

class AchievementChecker:
    """Evaluates the rule table for one domain. Never revokes."""

    def __init__(self, domain: Domain, definitions: Optional[List[Achievement]] = None):
        self.domain = Domain(domain)
        self.definitions = definitions if definitions is not None else get_definitions(self.domain)

    def _value(self, achievement: Achievement, profile: Profile, units: Sequence[Completable]) -> float:
        metric = METRICS[achievement.metric]
        return metric(profile, units)

    def evaluate(self, profile: Profile, units: Sequence[Completable]) -> List[str]:
        """
        Return ids of achievements newly satisfied by this state.

        Already-unlocked ids are skipped, so repeated calls on the same state
        return nothing new. A rule that fails is logged and skipped.
        """
        unlocked = profile.achievement_ids()
        earned = []

        for achievement in self.definitions:
            if achievement.code in unlocked:
                continue
            try:
                if self._value(achievement, profile, units) >= achievement.threshold_value:
                    earned.append(achievement.code)
            except Exception:
                logger.exception(f"Achievement rule '{achievement.code}' failed; skipping")

        return earned

    def progress(self, profile: Profile, units: Sequence[Completable]) -> List[AchievementProgress]:
        """Progress toward every rule in the domain."""
        unlocked = profile.achievement_ids()
        result = []

        for achievement in self.definitions:
            try:
                current = self._value(achievement, profile, units)
            except Exception:
                logger.exception(f"Achievement rule '{achievement.code}' failed; reporting 0")
                current = 0
            target = achievement.threshold_value
            is_complete = achievement.code in unlocked
            percentage = 100.0 if is_complete else round(min(current / target, 1.0) * 100, 1) if target > 0 else 0.0
            result.append(AchievementProgress(
                achievement=achievement,
                current_value=current,
                target_value=target,
                percentage=percentage,
                is_complete=is_complete,
            ))

        return result


# ============================================
# UNLOCK RECONCILIATION
# ============================================

def merge_achievements(
    ours: Sequence[AchievementRecord],
    theirs: Sequence[AchievementRecord],
) -> List[AchievementRecord]:
    """Set union by id, keeping the earliest unlock time."""
    merged: Dict[str, AchievementRecord] = {}
    for record in list(ours) + list(theirs):
        existing = merged.get(record.id)
        if existing is None or record.unlocked_at < existing.unlocked_at:
            merged[record.id] = record
    return sorted(merged.values(), key=lambda r: (r.unlocked_at, r.id))


def unlock(profile: Profile, codes: Iterable[str], now: Optional[datetime] = None) -> Profile:
    """
    Add achievement ids to a profile.

    Ids already present are ignored; points are recomputed from the final set.
    """
    now = now or utcnow()
    existing = profile.achievement_ids()
    new_records = [AchievementRecord(id=code, unlocked_at=now) for code in dict.fromkeys(codes) if code not in existing]
    if not new_records:
        return profile

    for record in new_records:
        name = ACHIEVEMENT_DEFINITIONS.get(record.id, {}).get("name", record.id)
        logger.info(f"Achievement unlocked: {name} ({record.id})")

    achievements = merge_achievements(profile.achievements, new_records)
    return profile.model_copy(update={
        "achievements": achievements,
        "achievement_points": sum(points_for(a.id) for a in achievements),
    })
