"""
Questline - Weekly Showdown
Runs encounters against every active rival in one pass
"""

import logging
import random
from datetime import datetime
from typing import Optional, Dict, List, Tuple

from config import RivalConfig
from models import RivalKind, RivalRelationship, Winner, utcnow
from .models import MetricSnapshot, EncounterResult, ShowdownEntry, ShowdownSummary
from .phantom import default_phantom_config, generate_phantom_metrics
from .relationship import apply_encounter
from .victory import simulate

logger = logging.getLogger(__name__)


def rival_metrics_for(
    relationship: RivalRelationship,
    user: MetricSnapshot,
    peer_metrics: Optional[Dict[str, MetricSnapshot]] = None,
    rng: Optional[random.Random] = None,
) -> Optional[MetricSnapshot]:
    """Opponent numbers: generated for synthetic rivals, looked up for peers."""
    if relationship.rival_kind == RivalKind.SYNTHETIC:
        previous = None
        if relationship.last_rival_metrics:
            previous = MetricSnapshot.model_validate(relationship.last_rival_metrics)
        return generate_phantom_metrics(user, default_phantom_config(relationship.personality), previous, rng)

    peer_metrics = peer_metrics or {}
    return peer_metrics.get(relationship.peer_user_id or "") or peer_metrics.get(relationship.id)


def run_encounter(
    relationship: RivalRelationship,
    user: MetricSnapshot,
    rival: MetricSnapshot,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
    config: Optional[RivalConfig] = None,
) -> Tuple[RivalRelationship, EncounterResult]:
    """Simulate one encounter and apply it to the relationship."""
    result = simulate(user, rival, relationship.personality, rng)
    updated = apply_encounter(relationship, result, now or utcnow(), config)
    updated = updated.model_copy(update={"last_rival_metrics": rival.model_dump()})
    return updated, result


def overall_result(wins: int, losses: int, ties: int) -> str:
    total = wins + losses + ties
    if total == 0:
        return "no_contest"
    if wins == total:
        return "flawless"
    if losses == total:
        return "routed"
    if wins > losses:
        return "victorious"
    if wins == losses:
        return "even"
    return "defeated"


def run_showdown(
    user: MetricSnapshot,
    relationships: List[RivalRelationship],
    peer_metrics: Optional[Dict[str, MetricSnapshot]] = None,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
    config: Optional[RivalConfig] = None,
) -> ShowdownSummary:
    """
    Weekly batch of encounters.

    Inactive rivals and peers without metrics are carried over unchanged.
    The summary holds every relationship, updated or not, in input order.
    """
    rng = rng or random.Random()
    now = now or utcnow()
    wins = losses = ties = 0
    entries: List[ShowdownEntry] = []
    updated_relationships: List[RivalRelationship] = []

    for relationship in relationships:
        if not relationship.active:
            updated_relationships.append(relationship)
            continue

        rival = rival_metrics_for(relationship, user, peer_metrics, rng)
        if rival is None:
            logger.warning(f"No metrics for peer rival {relationship.id}; skipped in showdown")
            updated_relationships.append(relationship)
            continue

        updated, result = run_encounter(relationship, user, rival, rng, now, config)
        updated_relationships.append(updated)
        entries.append(ShowdownEntry(
            relationship_id=relationship.id,
            rival_name=relationship.name,
            result=result,
            rival_metrics=rival,
        ))

        if result.winner == Winner.USER:
            wins += 1
        elif result.winner == Winner.RIVAL:
            losses += 1
        else:
            ties += 1

    summary = ShowdownSummary(
        ran_at=now,
        wins=wins,
        losses=losses,
        ties=ties,
        overall=overall_result(wins, losses, ties),
        entries=entries,
        relationships=updated_relationships,
    )
    logger.info(f"Showdown: {wins}W {losses}L {ties}T -> {summary.overall}")
    return summary
