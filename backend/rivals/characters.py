"""
Questline - Rival Characters
"""

from typing import List, Optional

from pydantic import BaseModel

from models import Personality


class RivalCharacter(BaseModel):
    id: str
    name: str
    personality: Personality
    color: str
    tagline: str


RIVAL_CHARACTERS: List[RivalCharacter] = [
    RivalCharacter(id="shadow", name="Shadow Self", personality=Personality.MIRROR,
                   color="#6366f1", tagline="Your reflection in the iron"),
    RivalCharacter(id="blaze", name="Blaze", personality=Personality.RIVAL,
                   color="#f97316", tagline="Always one step ahead"),
    RivalCharacter(id="sage", name="Iron Sage", personality=Personality.MENTOR,
                   color="#10b981", tagline="The path to strength is patience"),
    RivalCharacter(id="phantom", name="The Phantom", personality=Personality.NEMESIS,
                   color="#7c3aed", tagline="You'll never catch me"),
]


def characters_for(personality: Personality) -> List[RivalCharacter]:
    return [c for c in RIVAL_CHARACTERS if c.personality == Personality(personality)]


def get_character(character_id: str) -> Optional[RivalCharacter]:
    return next((c for c in RIVAL_CHARACTERS if c.id == character_id), None)


def _seed_hash(seed: str) -> int:
    # 32-bit string hash, stable across processes (unlike hash())
    value = 0
    for ch in seed:
        value = (value * 31 + ord(ch)) & 0xFFFFFFFF
    return value


def assign_character(personality: Personality, seed: str) -> RivalCharacter:
    """Deterministic pick from the personality's pool, keyed by e.g. the rival id."""
    pool = characters_for(personality)
    if not pool:
        raise ValueError(f"No character for personality '{personality}'")
    return pool[_seed_hash(seed) % len(pool)]
