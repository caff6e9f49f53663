"""
Questline - Leveling Engine
Monotone XP → level curve with an exact inverse
"""

import math
from bisect import bisect_right
from typing import Dict, Tuple

from models import Profile
from logger import logger


# ============================================
# LEVEL CURVE
# ============================================

# Cumulative XP needed to reach level N is XP_TABLE[N - 1]
XP_TABLE = (
    0, 100, 250, 500, 850, 1300, 1900, 2600, 3500, 4600,
    6000, 7700, 9700, 12000, 15000, 18500, 22500, 27000, 32000, 38000,
    45000, 53000, 62000, 72000, 85000,
)

TABLE_LEVELS = len(XP_TABLE)

# Past the table every step is 15% larger than the previous one,
# starting from the last tabulated step (85000 - 72000).
_TAIL_STEP = XP_TABLE[-1] - XP_TABLE[-2]
_GROWTH_NUM = 115
_GROWTH_DEN = 100


def _tail_threshold(n: int) -> int:
    """Threshold of level TABLE_LEVELS + n (n >= 0), geometric sum in integers."""
    if n <= 0:
        return XP_TABLE[-1]
    numerator = _TAIL_STEP * _GROWTH_NUM * (_GROWTH_NUM ** n - _GROWTH_DEN ** n)
    denominator = (_GROWTH_NUM - _GROWTH_DEN) * _GROWTH_DEN ** n
    return XP_TABLE[-1] + numerator // denominator


def xp_threshold(level: int) -> int:
    """
    Cumulative XP required to reach a level.

    Args:
        level: Target level (values below 1 are treated as 1)

    Returns:
        Total XP needed; xp_threshold(1) == 0
    """
    if level <= 1:
        return 0
    if level <= TABLE_LEVELS:
        return XP_TABLE[level - 1]
    return _tail_threshold(level - TABLE_LEVELS)


def level_for_xp(xp: int) -> int:
    """Largest level whose threshold does not exceed ``xp``."""
    xp = max(0, int(xp))
    if xp < XP_TABLE[-1]:
        return bisect_right(XP_TABLE, xp)

    # Invert the geometric tail with a log estimate, then settle exactly
    scaled = (xp - XP_TABLE[-1]) * (_GROWTH_NUM - _GROWTH_DEN) + _TAIL_STEP * _GROWTH_NUM
    estimate = (math.log(scaled) - math.log(_TAIL_STEP * _GROWTH_NUM)) / math.log(_GROWTH_NUM / _GROWTH_DEN)
    n = max(0, int(estimate))
    while _tail_threshold(n + 1) <= xp:
        n += 1
    while n > 0 and _tail_threshold(n) > xp:
        n -= 1
    return TABLE_LEVELS + n


def level_progress(xp: int) -> Dict[str, int]:
    """Level, XP earned inside the current level and XP still missing."""
    xp = max(0, int(xp))
    level = level_for_xp(xp)
    floor_xp = xp_threshold(level)
    next_xp = xp_threshold(level + 1)
    return {
        "level": level,
        "xp_in_level": xp - floor_xp,
        "xp_for_level": next_xp - floor_xp,
        "xp_to_next": next_xp - xp,
    }


def apply_xp(profile: Profile, delta: int) -> Tuple[Profile, int]:
    """
    Add (or remove) XP and re-derive the level.

    XP is clamped at zero; a negative delta may demote.

    Returns:
        (updated profile, level change)
    """
    new_xp = max(0, profile.xp + int(delta))
    progress = level_progress(new_xp)
    level_change = progress["level"] - profile.level

    if level_change > 0:
        logger.info(f"Level up: {profile.level} → {progress['level']} ({new_xp} XP)")
    elif level_change < 0:
        logger.info(f"Level down: {profile.level} → {progress['level']} ({new_xp} XP)")

    updated = profile.model_copy(update={
        "xp": new_xp,
        "level": progress["level"],
        "xp_to_next": progress["xp_to_next"],
    })
    return updated, level_change
