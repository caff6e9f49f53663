"""
Questline - Encounter Simulator
Personality-specific victory conditions for a head-to-head metric comparison
"""

import logging
import random
from typing import Optional, Dict, Tuple

from models import Personality, Winner
from .models import MetricSnapshot, CategoryResult, EncounterResult, StyleKind, PERSONALITY_STYLES

logger = logging.getLogger(__name__)


# Consistency style: workouts dominate, then volume, then PRs
CONSISTENCY_WEIGHTS = {"workouts": 0.5, "volume": 0.3, "prs": 0.2}
CATEGORY_ORDER = ("volume", "workouts", "prs")

CHAOS_MIN = 0.7
CHAOS_MAX = 1.3


# ============================================
# HELPERS
# ============================================

def compare_category(user_value: float, rival_value: float, tie_margin: float = 0.0) -> Winner:
    """Winner of one category; differences within ``rival × tie_margin`` are a tie."""
    diff = user_value - rival_value
    threshold = rival_value * tie_margin
    if diff > threshold:
        return Winner.USER
    if diff < -threshold:
        return Winner.RIVAL
    return Winner.TIE


def growth_rate(current: float, previous: float) -> float:
    """Percent change; starting from zero counts as 50% growth."""
    if previous == 0:
        return 50.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def composite_parts(metrics: MetricSnapshot, scale: float = 1.0) -> Dict[str, float]:
    return {
        "volume": metrics.volume / 10000 * 40 * scale,
        "workouts": metrics.workouts * 35 * scale,
        "prs": metrics.prs * 2 * 25 * scale,
    }


def composite_score(metrics: MetricSnapshot) -> float:
    return sum(composite_parts(metrics).values())


def _relative_gap(user_value: float, rival_value: float) -> float:
    top = max(user_value, rival_value)
    if top <= 0:
        return 0.0
    return (user_value - rival_value) / top


def _clamp_margin(value: float) -> float:
    return round(max(0.0, min(100.0, value)), 2)


def _breakdown(user: MetricSnapshot, rival: MetricSnapshot, volume_margin: float) -> Dict[str, CategoryResult]:
    return {
        "volume": CategoryResult(user=user.volume, rival=rival.volume,
                                 winner=compare_category(user.volume, rival.volume, volume_margin)),
        "workouts": CategoryResult(user=user.workouts, rival=rival.workouts,
                                   winner=compare_category(user.workouts, rival.workouts)),
        "prs": CategoryResult(user=user.prs, rival=rival.prs,
                              winner=compare_category(user.prs, rival.prs)),
    }


# ============================================
# VICTORY CONDITIONS
# ============================================

def _consistency(user: MetricSnapshot, rival: MetricSnapshot) -> EncounterResult:
    """Weighted per-category wins; the heaviest category the winner took is dominant."""
    breakdown = _breakdown(user, rival, volume_margin=0.02)

    score = 0.0
    gap = 0.0
    for category, weight in CONSISTENCY_WEIGHTS.items():
        result = breakdown[category]
        if result.winner == Winner.USER:
            score += weight
        elif result.winner == Winner.RIVAL:
            score -= weight
        gap += weight * _relative_gap(result.user, result.rival)

    if score > 0.05:
        winner, narrative = Winner.USER, "You showed up more often and it paid off."
    elif score < -0.05:
        winner, narrative = Winner.RIVAL, "Your reflection was more consistent this time."
    else:
        winner, narrative = Winner.TIE, "Step for step, nobody pulled away."

    dominant = "none"
    if winner != Winner.TIE:
        for category in sorted(CONSISTENCY_WEIGHTS, key=CONSISTENCY_WEIGHTS.get, reverse=True):
            if breakdown[category].winner == winner:
                dominant = category
                break

    return EncounterResult(
        personality=Personality.MIRROR,
        winner=winner,
        margin=_clamp_margin(abs(gap) * 100),
        dominant_factor=dominant,
        breakdown=breakdown,
        narrative=narrative,
        user_score=round(score, 4),
        rival_score=round(-score, 4),
    )


def _categories(user: MetricSnapshot, rival: MetricSnapshot) -> EncounterResult:
    """Best two of three categories; volume ties within 5%."""
    breakdown = _breakdown(user, rival, volume_margin=0.05)
    user_wins = sum(1 for r in breakdown.values() if r.winner == Winner.USER)
    rival_wins = sum(1 for r in breakdown.values() if r.winner == Winner.RIVAL)

    if user_wins >= 2:
        winner, narrative = Winner.USER, f"You won {user_wins} out of 3 battles!"
    elif rival_wins >= 2:
        winner, narrative = Winner.RIVAL, f"Your rival took {rival_wins} out of 3 categories."
    else:
        winner, narrative = Winner.TIE, "The battle was too close to call!"

    dominant = "none"
    if winner != Winner.TIE:
        dominant = next(c for c in CATEGORY_ORDER if breakdown[c].winner == winner)

    user_total = user.volume + user.workouts * 1000 + user.prs * 5000
    rival_total = rival.volume + rival.workouts * 1000 + rival.prs * 5000

    return EncounterResult(
        personality=Personality.RIVAL,
        winner=winner,
        margin=_clamp_margin(abs(_relative_gap(user_total, rival_total)) * 100),
        dominant_factor=dominant,
        breakdown=breakdown,
        narrative=narrative,
        user_score=user_total,
        rival_score=rival_total,
    )


def _growth_parts(metrics: MetricSnapshot) -> Tuple[float, float, float]:
    volume_growth = growth_rate(metrics.volume, metrics.previous_volume)
    workout_growth = growth_rate(metrics.workouts, metrics.previous_workouts)
    pr_bonus = 10 + metrics.prs * 5 if metrics.prs > 0 else 0
    return volume_growth, workout_growth, pr_bonus


def _growth(user: MetricSnapshot, rival: MetricSnapshot) -> EncounterResult:
    """Who improved more over their own previous window."""
    u_volume, u_workouts, u_pr = _growth_parts(user)
    r_volume, r_workouts, r_pr = _growth_parts(rival)
    user_score = u_volume * 0.5 + u_workouts * 0.3 + u_pr * 0.2
    rival_score = r_volume * 0.5 + r_workouts * 0.3 + r_pr * 0.2

    def banded(u: float, r: float, band: float) -> Winner:
        if u > r + band:
            return Winner.USER
        if r > u + band:
            return Winner.RIVAL
        return Winner.TIE

    breakdown = {
        "volume": CategoryResult(user=user.volume, rival=rival.volume, winner=banded(u_volume, r_volume, 2)),
        "workouts": CategoryResult(user=user.workouts, rival=rival.workouts, winner=banded(u_workouts, r_workouts, 2)),
        "prs": CategoryResult(user=user.prs, rival=rival.prs, winner=compare_category(user.prs, rival.prs)),
        "growth": CategoryResult(user=round(user_score, 1), rival=round(rival_score, 1),
                                 winner=banded(user_score, rival_score, 1)),
    }

    winner = banded(user_score, rival_score, 2)
    narrative = {
        Winner.USER: "Your growth impressed me. Well done.",
        Winner.RIVAL: "Keep pushing. Growth takes time.",
        Winner.TIE: "We grew together this week.",
    }[winner]

    return EncounterResult(
        personality=Personality.MENTOR,
        winner=winner,
        margin=_clamp_margin(abs(user_score - rival_score)),
        dominant_factor="growth" if winner != Winner.TIE else "none",
        breakdown=breakdown,
        narrative=narrative,
        user_score=round(user_score, 4),
        rival_score=round(rival_score, 4),
    )


def _volatile(user: MetricSnapshot, rival: MetricSnapshot, rng: random.Random) -> EncounterResult:
    """Composite score with a chaos factor applied to the rival."""
    chaos = rng.uniform(CHAOS_MIN, CHAOS_MAX)
    user_parts = composite_parts(user)
    rival_parts = composite_parts(rival, scale=chaos)
    user_score = sum(user_parts.values())
    rival_score = sum(rival_parts.values())

    breakdown = {
        "volume": CategoryResult(user=user.volume, rival=round(rival.volume * chaos),
                                 winner=compare_category(user.volume, rival.volume * chaos)),
        "workouts": CategoryResult(user=user.workouts, rival=round(rival.workouts * chaos),
                                   winner=compare_category(user.workouts, rival.workouts * chaos)),
        "prs": CategoryResult(user=user.prs, rival=rival.prs, winner=compare_category(user.prs, rival.prs)),
    }

    if user_score > rival_score * 1.05:
        winner = Winner.USER
        if chaos < 0.85:
            narrative = "They stumbled this week. You capitalized!"
        elif chaos > 1.15:
            narrative = "Even at their best, you prevailed!"
        else:
            narrative = "A hard-fought victory in the chaos!"
    elif rival_score > user_score * 1.05:
        winner = Winner.RIVAL
        if chaos > 1.15:
            narrative = "They went beast mode this week!"
        elif chaos < 0.85:
            narrative = "Even on an off week, they edged you out."
        else:
            narrative = "The chaos favored your nemesis this time."
    else:
        winner = Winner.TIE
        narrative = "Neither could break the other!"

    dominant = "none"
    if winner != Winner.TIE:
        sign = 1 if winner == Winner.USER else -1
        edges = {c: sign * (user_parts[c] - rival_parts[c]) for c in CATEGORY_ORDER}
        best = max(CATEGORY_ORDER, key=lambda c: edges[c])
        if edges[best] > 0:
            dominant = best

    return EncounterResult(
        personality=Personality.NEMESIS,
        winner=winner,
        margin=_clamp_margin(abs(_relative_gap(user_score, rival_score)) * 100),
        dominant_factor=dominant,
        breakdown=breakdown,
        narrative=narrative,
        chaos_factor=round(chaos, 4),
        user_score=round(user_score, 4),
        rival_score=round(rival_score, 4),
    )


# ============================================
# ENTRY POINT
# ============================================

def simulate(
    user: MetricSnapshot,
    rival: MetricSnapshot,
    personality: Personality = Personality.RIVAL,
    rng: Optional[random.Random] = None,
) -> EncounterResult:
    """
    Simulate one encounter.

    Pure apart from ``rng``, which only the volatile style draws from; pass a
    seeded ``random.Random`` for reproducible outcomes. Inputs and the chaos
    factor are logged with the result.
    """
    personality = Personality(personality)
    style = PERSONALITY_STYLES[personality]

    if style == StyleKind.CONSISTENCY:
        result = _consistency(user, rival)
    elif style == StyleKind.CATEGORIES:
        result = _categories(user, rival)
    elif style == StyleKind.GROWTH:
        result = _growth(user, rival)
    else:
        result = _volatile(user, rival, rng or random.Random())

    logger.info(
        f"Encounter [{personality.value}] user={user.model_dump()} rival={rival.model_dump()} "
        f"chaos={result.chaos_factor} -> {result.winner.value} "
        f"(margin {result.margin}, {result.dominant_factor})"
    )
    return result
