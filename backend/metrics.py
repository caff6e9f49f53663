"""
Questline - Window Metrics
Turns a domain snapshot into the metric shape rival encounters compare
"""

from datetime import datetime, timedelta
from typing import Tuple, Iterable

from models import Domain, Snapshot, TaskSnapshot, FitnessSnapshot, Completable
from rivals.models import MetricSnapshot


def week_window(now: datetime, days: int = 7) -> Tuple[datetime, datetime]:
    """Rolling window ending now."""
    return now - timedelta(days=days), now


def _in_window(unit: Completable, start: datetime, end: datetime) -> bool:
    return unit.completed and unit.completed_at is not None and start < unit.completed_at <= end


def _completed_in(units: Iterable[Completable], start: datetime, end: datetime) -> list:
    return [u for u in units if _in_window(u, start, end)]


def fitness_metrics(snapshot: FitnessSnapshot, start: datetime, end: datetime) -> MetricSnapshot:
    """Finished workouts, working-set volume and PRs in (start, end], plus the window before."""
    previous_start = start - (end - start)

    def window(lo: datetime, hi: datetime) -> Tuple[int, float, int]:
        sets = [s for s in _completed_in(snapshot.sets, lo, hi) if not s.is_warmup]
        return (
            len(_completed_in(snapshot.workouts, lo, hi)),
            sum(s.volume for s in sets),
            sum(1 for s in sets if s.is_pr),
        )

    workouts, volume, prs = window(start, end)
    previous_workouts, previous_volume, _ = window(previous_start, start)
    return MetricSnapshot(
        workouts=workouts,
        volume=volume,
        prs=prs,
        previous_workouts=previous_workouts,
        previous_volume=previous_volume,
    )


def task_metrics(snapshot: TaskSnapshot, start: datetime, end: datetime) -> MetricSnapshot:
    """Completions stand in for workouts, XP for volume, on-time finishes for PRs."""
    previous_start = start - (end - start)

    def window(lo: datetime, hi: datetime) -> Tuple[int, float, int]:
        tasks = _completed_in(snapshot.tasks, lo, hi)
        return (
            len(tasks),
            sum(t.xp_awarded for t in tasks),
            sum(1 for t in tasks if t.was_on_time),
        )

    completed, xp, on_time = window(start, end)
    previous_completed, previous_xp, _ = window(previous_start, start)
    return MetricSnapshot(
        workouts=completed,
        volume=xp,
        prs=on_time,
        previous_workouts=previous_completed,
        previous_volume=previous_xp,
    )


def metrics_for(domain: Domain, snapshot: Snapshot, now: datetime, days: int = 7) -> MetricSnapshot:
    start, stop = week_window(now, days)
    if Domain(domain) == Domain.FITNESS:
        return fitness_metrics(snapshot, start, stop)
    return task_metrics(snapshot, start, stop)
