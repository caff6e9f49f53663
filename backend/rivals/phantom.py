"""
Questline - Phantom Generator
Synthetic opponent metrics that rubber-band toward the user's own numbers
"""

import logging
import math
import random
from typing import Optional, Dict

from pydantic import BaseModel, Field

from models import Personality
from .models import MetricSnapshot

logger = logging.getLogger(__name__)


class PersonalityModifier(BaseModel):
    volume_multiplier: float
    consistency_multiplier: float
    pr_chance: float
    description: str


# How phantom performance relates to the user's
PERSONALITY_MODIFIERS: Dict[Personality, PersonalityModifier] = {
    Personality.MIRROR: PersonalityModifier(
        volume_multiplier=1.0, consistency_multiplier=1.0, pr_chance=0.5,
        description="Matches your performance closely",
    ),
    Personality.RIVAL: PersonalityModifier(
        volume_multiplier=1.1, consistency_multiplier=1.05, pr_chance=0.6,
        description="Always slightly ahead of you",
    ),
    Personality.MENTOR: PersonalityModifier(
        volume_multiplier=1.25, consistency_multiplier=1.15, pr_chance=0.75,
        description="A stronger version pushing you harder",
    ),
    Personality.NEMESIS: PersonalityModifier(
        volume_multiplier=1.0, consistency_multiplier=1.0, pr_chance=0.65,
        description="Unpredictable and intense",
    ),
}


class PhantomConfig(BaseModel):
    personality: Personality = Personality.RIVAL
    rubber_band_strength: float = Field(default=0.7, ge=0, le=1)
    volatility: float = Field(default=0.2, ge=0, le=1)


def default_phantom_config(personality: Personality = Personality.RIVAL) -> PhantomConfig:
    personality = Personality(personality)
    strength = {Personality.NEMESIS: 0.3, Personality.MENTOR: 0.5}.get(personality, 0.7)
    volatility = {Personality.NEMESIS: 0.4, Personality.MIRROR: 0.1}.get(personality, 0.2)
    return PhantomConfig(personality=personality, rubber_band_strength=strength, volatility=volatility)


def suggested_phantom_config(user_level: int) -> PhantomConfig:
    """Harder personalities as the user levels up."""
    if user_level < 5:
        return PhantomConfig(personality=Personality.MIRROR, rubber_band_strength=0.8, volatility=0.1)
    if user_level < 15:
        return PhantomConfig(personality=Personality.RIVAL, rubber_band_strength=0.7, volatility=0.2)
    if user_level < 30:
        return PhantomConfig(personality=Personality.MENTOR, rubber_band_strength=0.5, volatility=0.25)
    return PhantomConfig(personality=Personality.NEMESIS, rubber_band_strength=0.3, volatility=0.4)


def rubber_band(
    user_value: float,
    previous_value: float,
    multiplier: float,
    strength: float,
    volatility: float,
    rng: random.Random,
) -> float:
    """Pull the phantom's previous value toward ``user × multiplier``, then jitter."""
    target = user_value * multiplier
    pulled = previous_value + (target - previous_value) * strength
    jitter = 1 + (rng.random() - 0.5) * 2 * volatility
    return max(0.0, pulled * jitter)


def generate_phantom_metrics(
    user: MetricSnapshot,
    config: PhantomConfig,
    previous: Optional[MetricSnapshot] = None,
    rng: Optional[random.Random] = None,
) -> MetricSnapshot:
    """
    Next window's metrics for a synthetic opponent.

    Without earlier phantom numbers the user's previous window seeds the curve.
    """
    rng = rng or random.Random()
    modifier = PERSONALITY_MODIFIERS[config.personality]

    previous_volume = (previous.volume if previous and previous.volume else user.previous_volume)
    previous_workouts = (previous.workouts if previous and previous.workouts else user.previous_workouts)

    volume = rubber_band(
        user.volume, previous_volume, modifier.volume_multiplier,
        config.rubber_band_strength, config.volatility, rng,
    )
    workouts = round(rubber_band(
        user.workouts, previous_workouts, modifier.consistency_multiplier,
        config.rubber_band_strength, config.volatility * 0.5, rng,
    ))

    pr_chance = modifier.pr_chance + (rng.random() - 0.5) * config.volatility
    prs = math.ceil(rng.random() * 3) if rng.random() < pr_chance else 0

    phantom = MetricSnapshot(
        workouts=workouts,
        volume=round(volume),
        prs=prs,
        previous_workouts=previous.workouts if previous else 0,
        previous_volume=previous.volume if previous else 0,
    )
    logger.debug(f"Phantom [{config.personality.value}] from user={user.model_dump()} -> {phantom.model_dump()}")
    return phantom
