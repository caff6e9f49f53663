"""
Questline - Rival Relationship
Scoreboard updates applied after an encounter
"""

import logging
from datetime import datetime
from typing import Optional

from config import get_rival_config, RivalConfig
from models import RivalRelationship, Winner
from .models import EncounterResult

logger = logging.getLogger(__name__)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def respect_delta(result: EncounterResult, config: Optional[RivalConfig] = None) -> int:
    """+1 on a win, -1 on a loss, doubled for a dominant margin."""
    config = config or get_rival_config()
    if result.winner == Winner.TIE:
        return 0
    delta = 1 if result.winner == Winner.USER else -1
    if result.margin > config.dominant_margin:
        delta *= 2
    return delta


def heat_delta(result: EncounterResult, streak_on_line: int, config: Optional[RivalConfig] = None) -> int:
    """Close results heat the rivalry up, lopsided ones cool it down."""
    config = config or get_rival_config()
    if result.winner == Winner.TIE or result.margin <= config.close_margin:
        delta = config.close_heat_gain
    elif result.margin > config.lopsided_margin:
        delta = -config.lopsided_heat_decay
    else:
        delta = config.moderate_heat_gain
    if abs(streak_on_line) >= 3:
        delta += config.streak_heat_bonus
    return delta


def next_win_streak(win_streak: int, winner: Winner) -> int:
    """Signed streak: positive for user wins, negative for losses; ties keep it."""
    if winner == Winner.USER:
        return win_streak + 1 if win_streak > 0 else 1
    if winner == Winner.RIVAL:
        return win_streak - 1 if win_streak < 0 else -1
    return win_streak


def apply_encounter(
    relationship: RivalRelationship,
    result: EncounterResult,
    now: datetime,
    config: Optional[RivalConfig] = None,
) -> RivalRelationship:
    """Return the relationship after ``result``; the input is left untouched."""
    config = config or get_rival_config()

    respect = _clamp(relationship.respect_level + respect_delta(result, config),
                     config.min_respect, config.max_respect)
    heat = _clamp(relationship.rivalry_heat + heat_delta(result, relationship.win_streak, config),
                  config.min_heat, config.max_heat)
    win_streak = next_win_streak(relationship.win_streak, result.winner)

    updated = relationship.model_copy(update={
        "respect_level": respect,
        "rivalry_heat": heat,
        "win_streak": win_streak,
        "longest_win_streak": max(relationship.longest_win_streak, win_streak),
        "longest_lose_streak": max(relationship.longest_lose_streak, -win_streak),
        "user_wins": relationship.user_wins + (1 if result.winner == Winner.USER else 0),
        "rival_wins": relationship.rival_wins + (1 if result.winner == Winner.RIVAL else 0),
        "ties": relationship.ties + (1 if result.winner == Winner.TIE else 0),
        "encounter_count": relationship.encounter_count + 1,
        "last_encounter": now,
        "last_winner": result.winner,
    })

    logger.info(
        f"Rival {relationship.id}: respect {relationship.respect_level}->{respect}, "
        f"heat {relationship.rivalry_heat}->{heat}, streak {win_streak}"
    )
    return updated
