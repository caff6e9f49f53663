"""
Questline - Rival Package
Encounter simulation, phantom opponents and the weekly showdown
"""

from .models import (
    MetricSnapshot,
    CategoryResult,
    EncounterResult,
    ShowdownEntry,
    ShowdownSummary,
    StyleKind,
    PERSONALITY_STYLES,
)

from .victory import (
    simulate,
    compare_category,
    growth_rate,
    composite_score,
)

from .phantom import (
    PhantomConfig,
    PERSONALITY_MODIFIERS,
    default_phantom_config,
    suggested_phantom_config,
    generate_phantom_metrics,
)

from .characters import (
    RivalCharacter,
    RIVAL_CHARACTERS,
    assign_character,
    get_character,
)

from .relationship import (
    apply_encounter,
    respect_delta,
    heat_delta,
    next_win_streak,
)

from .showdown import (
    run_encounter,
    run_showdown,
    rival_metrics_for,
    overall_result,
)


__all__ = [
    # Models
    "MetricSnapshot",
    "CategoryResult",
    "EncounterResult",
    "ShowdownEntry",
    "ShowdownSummary",
    "StyleKind",
    "PERSONALITY_STYLES",
    # Simulation
    "simulate",
    "compare_category",
    "growth_rate",
    "composite_score",
    # Phantoms
    "PhantomConfig",
    "PERSONALITY_MODIFIERS",
    "default_phantom_config",
    "suggested_phantom_config",
    "generate_phantom_metrics",
    # Characters
    "RivalCharacter",
    "RIVAL_CHARACTERS",
    "assign_character",
    "get_character",
    # Relationships
    "apply_encounter",
    "respect_delta",
    "heat_delta",
    "next_win_streak",
    # Showdown
    "run_encounter",
    "run_showdown",
    "rival_metrics_for",
    "overall_result",
]
