"""
Questline - Streak Tracker
Consecutive-day counters, advanced by qualifying completions only
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel

from config import get_scoring_config, ScoringConfig
from models import Domain, StreakInfo, Timestamp


class StreakType(str, Enum):
    DAILY = "daily"
    INBOX_ZERO = "inbox_zero"
    EARLY_BIRD = "early_bird"
    NIGHT_OWL = "night_owl"
    WORKOUT = "workout"
    PERSONAL_RECORD = "personal_record"


# Streak that drives the XP multiplier in each domain
PRIMARY_STREAK = {
    Domain.TASKS: StreakType.DAILY,
    Domain.FITNESS: StreakType.WORKOUT,
}


class CompletionEvent(BaseModel):
    """What happened, as far as streak conditions care.

    ``at`` should carry the user's local timezone; hour-based streaks and
    day boundaries are read from it as-is.
    """
    domain: Domain
    at: Timestamp
    open_units_remaining: Optional[int] = None
    workout_finished: bool = False
    personal_record: bool = False


def advance(streak: StreakInfo, today: date) -> StreakInfo:
    """
    Advance a streak for activity on ``today``.

    Pure and idempotent per date: a second call for the same day is a no-op,
    a call for the following day extends the streak, anything later restarts it.
    Dates before ``last_date`` (clock skew) are ignored.
    """
    if streak.last_date is None:
        return StreakInfo(current=1, longest=max(1, streak.longest), last_date=today)

    gap = (today - streak.last_date).days
    if gap <= 0:
        return streak
    if gap == 1:
        current = streak.current + 1
        return StreakInfo(current=current, longest=max(streak.longest, current), last_date=today)
    return StreakInfo(current=1, longest=max(streak.longest, 1), last_date=today)


def live_streak(streak: StreakInfo, today: date) -> int:
    """Streak value as of ``today``: a streak not extended yesterday or today is broken."""
    if streak.last_date is None:
        return 0
    if (today - streak.last_date).days > 1:
        return 0
    return streak.current


def streak_at_risk(streak: StreakInfo, today: date) -> bool:
    """Alive, but nothing logged today yet."""
    return streak.current > 0 and streak.last_date == today - timedelta(days=1)


def qualifying_streaks(event: CompletionEvent, config: Optional[ScoringConfig] = None) -> List[StreakType]:
    """Streak types whose condition holds for this event."""
    config = config or get_scoring_config()
    hour = event.at.hour
    qualifying: List[StreakType] = []

    if event.domain == Domain.TASKS:
        qualifying.append(StreakType.DAILY)
        if event.open_units_remaining == 0:
            qualifying.append(StreakType.INBOX_ZERO)
        if hour < config.early_bird_hour:
            qualifying.append(StreakType.EARLY_BIRD)
        if hour >= config.night_owl_hour:
            qualifying.append(StreakType.NIGHT_OWL)
    else:
        if event.workout_finished:
            qualifying.append(StreakType.WORKOUT)
            if hour < config.early_bird_hour:
                qualifying.append(StreakType.EARLY_BIRD)
            if hour >= config.night_owl_hour:
                qualifying.append(StreakType.NIGHT_OWL)
        if event.personal_record:
            qualifying.append(StreakType.PERSONAL_RECORD)

    return qualifying


def advance_for_event(
    streaks: Dict[str, StreakInfo],
    event: CompletionEvent,
    config: Optional[ScoringConfig] = None,
) -> Dict[str, StreakInfo]:
    """Return a new streak map with every qualifying streak advanced."""
    updated = dict(streaks)
    today = event.at.date()
    for streak_type in qualifying_streaks(event, config):
        key = streak_type.value
        updated[key] = advance(updated.get(key) or StreakInfo(), today)
    return updated


def current_streak_for(streaks: Dict[str, StreakInfo], domain: Domain, at: datetime) -> int:
    """Live value of the domain's primary streak before ``at``'s completion is counted."""
    key = PRIMARY_STREAK[Domain(domain)].value
    return live_streak(streaks.get(key) or StreakInfo(), at.date())
