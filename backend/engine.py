"""
Questline - Game Engine
Command surface for tasks, workouts and rivals. Every command mutates the
local store synchronously and returns the side effects for the sync engine.
"""

import random
from datetime import date, datetime
from typing import Optional, List, Dict, Any, Callable

from achievements import AchievementChecker, AchievementProgress, unlock
from config import get_scoring_config, get_rival_config, ScoringConfig, RivalConfig
from leveling import apply_xp
from metrics import metrics_for
from models import (
    Domain, Profile, DailyStat, Task, Project, Category, Workout, ExerciseSet,
    RivalRelationship, RivalKind, Personality, Completable,
    Outcome, PushEffect, PullEffect, AwardEffect, PushMode,
)
from rivals import (
    MetricSnapshot,
    assign_character, rival_metrics_for, run_encounter, run_showdown,
)
from scoring import ScoringContext, score_breakdown, reverse_award, preview_xp
from store import LocalStore, new_entity_id
from streaks import CompletionEvent, advance_for_event, current_streak_for
from logger import logger


# Fields only the completion path may change
PROTECTED_FIELDS = frozenset({
    "id", "created_at", "updated_at", "completed", "completed_at", "xp_awarded",
    "was_on_time", "is_pr", "parent_id",
})

RIVAL_SCOREBOARD_FIELDS = frozenset({
    "respect_level", "rivalry_heat", "win_streak", "longest_win_streak", "longest_lose_streak",
    "user_wins", "rival_wins", "ties", "encounter_count", "last_encounter", "last_winner",
    "last_rival_metrics",
})

TASKS = Domain.TASKS
FITNESS = Domain.FITNESS


def local_now() -> datetime:
    return datetime.now().astimezone()


def _immediate(domain: Domain) -> PushEffect:
    return PushEffect(domain=domain, mode=PushMode.IMMEDIATE)


def _debounced(domain: Domain) -> PushEffect:
    return PushEffect(domain=domain, mode=PushMode.DEBOUNCED)


class GameEngine:
    """
    Reducer-style command surface over the local store.

    Network effects are never performed here; each command returns an
    ``Outcome`` whose ``effects`` are handed to ``SyncEngine.dispatch``.
    """

    def __init__(
        self,
        store: LocalStore,
        scoring_config: Optional[ScoringConfig] = None,
        rival_config: Optional[RivalConfig] = None,
        clock: Callable[[], datetime] = local_now,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.scoring_config = scoring_config or get_scoring_config()
        self.rival_config = rival_config or get_rival_config()
        self.clock = clock
        self.rng = rng or random.Random()

    # ============================================
    # QUERIES
    # ============================================

    def profile(self, domain: Domain) -> Profile:
        return self.store.profile(domain)

    def preview_task_xp(self, task_id: str) -> int:
        task = self.store.get(TASKS, "tasks", task_id)
        profile = self.store.profile(TASKS)
        now = self.clock()
        return preview_xp(task, current_streak_for(profile.streaks, TASKS, now), now, self.scoring_config)

    def achievement_progress(self, domain: Domain) -> List[AchievementProgress]:
        snapshot = self.store.snapshot(domain)
        return AchievementChecker(domain).progress(snapshot.profile, snapshot.completables())

    # ============================================
    # SHARED COMPLETION PATH
    # ============================================

    def _context(self, domain: Domain, profile: Profile, now: datetime) -> ScoringContext:
        return ScoringContext(
            now=now,
            streak=current_streak_for(profile.streaks, domain, now),
            body_weight=profile.body_weight,
        )

    def _day_key(self, when: Optional[datetime], now: datetime) -> str:
        when = when or now
        return when.astimezone(now.tzinfo).date().isoformat()

    def _adjust_daily(self, domain: Domain, day: str, completed: int, xp: int) -> Dict[str, DailyStat]:
        daily_stats = dict(self.store.snapshot(domain).daily_stats)
        stat = daily_stats.get(day) or DailyStat(day=date.fromisoformat(day))
        daily_stats[day] = stat.model_copy(update={
            "completed": max(0, stat.completed + completed),
            "xp": max(0, stat.xp + xp),
        })
        return daily_stats

    def _advance_streaks(self, profile: Profile, event: CompletionEvent) -> Profile:
        try:
            streaks = advance_for_event(profile.streaks, event, self.scoring_config)
        except Exception:
            logger.exception("Streak update failed; completion kept")
            return profile
        return profile.model_copy(update={"streaks": streaks})

    def _check_achievements(self, domain: Domain, now: datetime) -> List[str]:
        """Evaluate against the just-committed state. Failures never undo the completion."""
        try:
            snapshot = self.store.snapshot(domain)
            earned = AchievementChecker(domain).evaluate(snapshot.profile, snapshot.completables())
            if earned:
                self.store.put_profile(domain, unlock(snapshot.profile, earned, now))
            return earned
        except Exception:
            logger.exception("Achievement evaluation failed; completion kept")
            return []

    def _grant(self, domain: Domain, xp: int, **counters: int) -> tuple:
        """Add XP and counters to the profile; returns (profile, level_change)."""
        profile, level_change = apply_xp(self.store.profile(domain), xp)
        update = {name: max(0, getattr(profile, name) + delta) for name, delta in counters.items()}
        return profile.model_copy(update=update), level_change

    def _revoke(self, domain: Domain, unit: Completable, now: datetime, **counters: int) -> Outcome:
        """Reverse a completion exactly: frozen XP back out, counters down, streaks untouched."""
        xp = reverse_award(unit)
        profile, level_change = self._grant(domain, -xp, **counters)
        completed = -1 if counters.get("total_completed") else 0
        daily_stats = self._adjust_daily(domain, self._day_key(unit.completed_at, now), completed, -xp)
        self.store.put_state(domain, profile=profile, daily_stats=daily_stats)
        return Outcome(xp_delta=-xp, level_change=level_change)

    # ============================================
    # TASKS
    # ============================================

    def _check_protected(self, changes: Dict[str, Any]) -> None:
        protected = PROTECTED_FIELDS.intersection(changes)
        if protected:
            raise ValueError(f"Cannot set {', '.join(sorted(protected))} directly")

    def create_task(self, title: str, **fields: Any) -> Outcome:
        self._check_protected(fields)
        task = Task(id=new_entity_id(), title=title, created_at=self.clock(), **fields)
        task = self.store.insert(TASKS, "tasks", task)
        logger.info(f"Task created: {task.title} ({task.id})")
        return Outcome(result=task, effects=[_immediate(TASKS)])

    def update_task(self, task_id: str, **changes: Any) -> Outcome:
        self._check_protected(changes)
        task = self.store.update(TASKS, "tasks", task_id, **changes)
        return Outcome(result=task, effects=[_debounced(TASKS)])

    def delete_task(self, task_id: str) -> Outcome:
        task = self.store.get(TASKS, "tasks", task_id)
        outcome = Outcome()
        if task.completed:
            outcome = self._revoke(TASKS, task, self.clock(), total_completed=-1)
        self.store.delete(TASKS, "tasks", task_id)
        logger.info(f"Task deleted: {task.title} ({task.id})")
        outcome.result = task
        outcome.effects = [_immediate(TASKS)]
        return outcome

    def complete_task(self, task_id: str) -> Outcome:
        """Score, mark complete, then advance streaks and achievements."""
        task = self.store.get(TASKS, "tasks", task_id)
        if task.completed:
            return Outcome(result=task)

        now = self.clock()
        profile = self.store.profile(TASKS)
        breakdown = score_breakdown(task, self._context(TASKS, profile, now), self.scoring_config)

        task = self.store.update(
            TASKS, "tasks", task_id,
            completed=True, completed_at=now, xp_awarded=breakdown.xp, was_on_time=breakdown.on_time,
        )
        profile, level_change = self._grant(TASKS, breakdown.xp, total_completed=1)
        open_tasks = sum(1 for t in self.store.list(TASKS, "tasks") if not t.completed)
        profile = self._advance_streaks(profile, CompletionEvent(
            domain=TASKS, at=now, open_units_remaining=open_tasks,
        ))
        daily_stats = self._adjust_daily(TASKS, self._day_key(now, now), 1, breakdown.xp)
        self.store.put_state(TASKS, profile=profile, daily_stats=daily_stats)
        unlocked = self._check_achievements(TASKS, now)

        logger.info(f"Task completed: {task.title} (+{breakdown.xp} XP)")
        return Outcome(
            result=task,
            xp_delta=breakdown.xp,
            level_change=level_change,
            unlocked=unlocked,
            effects=[
                _immediate(TASKS),
                AwardEffect(domain=TASKS, action="task_complete", xp_amount=breakdown.award_xp,
                            unit_id=task.id, metadata={"xp": breakdown.xp, "streak_multiplier": breakdown.streak}),
            ],
        )

    def uncomplete_task(self, task_id: str) -> Outcome:
        task = self.store.get(TASKS, "tasks", task_id)
        if not task.completed:
            return Outcome(result=task)

        outcome = self._revoke(TASKS, task, self.clock(), total_completed=-1)
        task = self.store.update(
            TASKS, "tasks", task_id,
            completed=False, completed_at=None, xp_awarded=0, was_on_time=None,
        )
        logger.info(f"Task reopened: {task.title} ({outcome.xp_delta} XP)")
        outcome.result = task
        outcome.effects = [_immediate(TASKS)]
        return outcome

    def toggle_task(self, task_id: str) -> Outcome:
        task = self.store.get(TASKS, "tasks", task_id)
        if task.completed:
            return self.uncomplete_task(task_id)
        return self.complete_task(task_id)

    # ============================================
    # PROJECTS & CATEGORIES
    # ============================================

    def create_project(self, name: str, **fields: Any) -> Outcome:
        self._check_protected(fields)
        project = self.store.insert(TASKS, "projects", Project(id=new_entity_id(), name=name, **fields))
        return Outcome(result=project, effects=[_immediate(TASKS)])

    def update_project(self, project_id: str, **changes: Any) -> Outcome:
        self._check_protected(changes)
        project = self.store.update(TASKS, "projects", project_id, **changes)
        return Outcome(result=project, effects=[_debounced(TASKS)])

    def delete_project(self, project_id: str) -> Outcome:
        """Delete a project; its tasks stay and lose the reference."""
        project = self.store.delete(TASKS, "projects", project_id)
        for task in self.store.list(TASKS, "tasks"):
            if task.project_id == project_id:
                self.store.update(TASKS, "tasks", task.id, project_id=None)
        return Outcome(result=project, effects=[_immediate(TASKS)])

    def create_category(self, name: str, **fields: Any) -> Outcome:
        self._check_protected(fields)
        category = self.store.insert(TASKS, "categories", Category(id=new_entity_id(), name=name, **fields))
        return Outcome(result=category, effects=[_immediate(TASKS)])

    def update_category(self, category_id: str, **changes: Any) -> Outcome:
        self._check_protected(changes)
        category = self.store.update(TASKS, "categories", category_id, **changes)
        return Outcome(result=category, effects=[_debounced(TASKS)])

    def delete_category(self, category_id: str) -> Outcome:
        category = self.store.delete(TASKS, "categories", category_id)
        for task in self.store.list(TASKS, "tasks"):
            if task.category_id == category_id:
                self.store.update(TASKS, "tasks", task.id, category_id=None)
        return Outcome(result=category, effects=[_immediate(TASKS)])

    # ============================================
    # WORKOUTS
    # ============================================

    def _recompute_record(self, exercise_id: str) -> Dict[str, float]:
        """Best working-set weight left for an exercise after sets were removed."""
        snapshot = self.store.snapshot(FITNESS)
        records = dict(snapshot.records)
        remaining = [
            s.weight for s in snapshot.sets
            if s.exercise_id == exercise_id and s.completed and not s.is_warmup and s.weight > 0
        ]
        if remaining:
            records[exercise_id] = max(remaining)
        else:
            records.pop(exercise_id, None)
        return records

    def start_workout(self, name: str = "Workout", **fields: Any) -> Outcome:
        self._check_protected(fields)
        now = self.clock()
        workout = Workout(id=new_entity_id(), name=name, started_at=fields.pop("started_at", now),
                          created_at=now, **fields)
        workout = self.store.insert(FITNESS, "workouts", workout)
        logger.info(f"Workout started: {workout.name} ({workout.id})")
        return Outcome(result=workout, effects=[_immediate(FITNESS)])

    def update_workout(self, workout_id: str, **changes: Any) -> Outcome:
        self._check_protected(changes)
        workout = self.store.update(FITNESS, "workouts", workout_id, **changes)
        return Outcome(result=workout, effects=[_debounced(FITNESS)])

    def log_set(
        self,
        workout_id: str,
        exercise_id: str,
        weight: float,
        reps: int,
        rpe: Optional[float] = None,
        is_warmup: bool = False,
    ) -> Outcome:
        """Log a set as an already-completed unit; working sets may set a PR."""
        self.store.get(FITNESS, "workouts", workout_id)
        now = self.clock()
        snapshot = self.store.snapshot(FITNESS)
        profile = snapshot.profile

        is_pr = not is_warmup and weight > 0 and weight > snapshot.records.get(exercise_id, 0)
        exercise_set = ExerciseSet(
            id=new_entity_id(), parent_id=workout_id, exercise_id=exercise_id,
            weight=weight, reps=reps, rpe=rpe, is_warmup=is_warmup, is_pr=is_pr,
            completed=True, completed_at=now, created_at=now,
        )
        breakdown = score_breakdown(exercise_set, self._context(FITNESS, profile, now), self.scoring_config)
        exercise_set = exercise_set.model_copy(update={"xp_awarded": breakdown.xp})
        exercise_set = self.store.insert(FITNESS, "sets", exercise_set)

        profile, level_change = self._grant(FITNESS, breakdown.xp, total_sets=1)
        profile = profile.model_copy(update={"total_volume": profile.total_volume + exercise_set.volume})
        records = dict(snapshot.records)
        if is_pr:
            records[exercise_id] = weight
            profile = self._advance_streaks(profile, CompletionEvent(domain=FITNESS, at=now, personal_record=True))
            logger.info(f"New PR: {exercise_id} {weight}")
        daily_stats = self._adjust_daily(FITNESS, self._day_key(now, now), 0, breakdown.xp)
        self.store.put_state(FITNESS, profile=profile, records=records, daily_stats=daily_stats)
        unlocked = self._check_achievements(FITNESS, now)

        return Outcome(
            result=exercise_set,
            xp_delta=breakdown.xp,
            level_change=level_change,
            unlocked=unlocked,
            effects=[
                _immediate(FITNESS),
                AwardEffect(domain=FITNESS, action="set_logged", xp_amount=breakdown.award_xp,
                            unit_id=exercise_set.id, metadata={"exercise_id": exercise_id, "is_pr": is_pr}),
            ],
        )

    def _remove_sets(self, sets: List[ExerciseSet], now: datetime) -> Outcome:
        total_xp = 0
        level_change = 0
        for exercise_set in sets:
            outcome = self._revoke(FITNESS, exercise_set, now, total_sets=-1)
            total_xp += outcome.xp_delta
            level_change += outcome.level_change
            profile = self.store.profile(FITNESS)
            self.store.delete(FITNESS, "sets", exercise_set.id)
            self.store.put_state(FITNESS, profile=profile.model_copy(update={
                "total_volume": max(0.0, profile.total_volume - exercise_set.volume),
            }))
        for exercise_id in {s.exercise_id for s in sets if s.is_pr}:
            self.store.put_state(FITNESS, records=self._recompute_record(exercise_id))
        return Outcome(xp_delta=total_xp, level_change=level_change)

    def remove_set(self, set_id: str) -> Outcome:
        exercise_set = self.store.get(FITNESS, "sets", set_id)
        outcome = self._remove_sets([exercise_set], self.clock())
        outcome.result = exercise_set
        outcome.effects = [_immediate(FITNESS)]
        return outcome

    def finish_workout(self, workout_id: str) -> Outcome:
        workout = self.store.get(FITNESS, "workouts", workout_id)
        if workout.completed:
            return Outcome(result=workout)

        now = self.clock()
        profile = self.store.profile(FITNESS)
        breakdown = score_breakdown(workout, self._context(FITNESS, profile, now), self.scoring_config)
        workout = self.store.update(
            FITNESS, "workouts", workout_id,
            completed=True, completed_at=now, ended_at=now, xp_awarded=breakdown.xp,
        )

        profile, level_change = self._grant(FITNESS, breakdown.xp, total_workouts=1, total_completed=1)
        profile = self._advance_streaks(profile, CompletionEvent(domain=FITNESS, at=now, workout_finished=True))
        daily_stats = self._adjust_daily(FITNESS, self._day_key(now, now), 1, breakdown.xp)
        self.store.put_state(FITNESS, profile=profile, daily_stats=daily_stats)
        unlocked = self._check_achievements(FITNESS, now)

        logger.info(f"Workout finished: {workout.name} (+{breakdown.xp} XP)")
        return Outcome(
            result=workout,
            xp_delta=breakdown.xp,
            level_change=level_change,
            unlocked=unlocked,
            effects=[
                _immediate(FITNESS),
                AwardEffect(domain=FITNESS, action="workout_complete", xp_amount=breakdown.award_xp,
                            unit_id=workout.id, metadata={"xp": breakdown.xp}),
            ],
        )

    def reopen_workout(self, workout_id: str) -> Outcome:
        workout = self.store.get(FITNESS, "workouts", workout_id)
        if not workout.completed:
            return Outcome(result=workout)

        outcome = self._revoke(FITNESS, workout, self.clock(), total_workouts=-1, total_completed=-1)
        workout = self.store.update(
            FITNESS, "workouts", workout_id,
            completed=False, completed_at=None, ended_at=None, xp_awarded=0,
        )
        outcome.result = workout
        outcome.effects = [_immediate(FITNESS)]
        return outcome

    def delete_workout(self, workout_id: str) -> Outcome:
        """Delete a workout and its sets, revoking all XP they earned."""
        workout = self.store.get(FITNESS, "workouts", workout_id)
        now = self.clock()
        outcome = Outcome()
        if workout.completed:
            outcome = self._revoke(FITNESS, workout, now, total_workouts=-1, total_completed=-1)

        sets = [s for s in self.store.list(FITNESS, "sets") if s.parent_id == workout_id]
        removed = self._remove_sets(sets, now)
        self.store.delete(FITNESS, "workouts", workout_id)

        logger.info(f"Workout deleted: {workout.name} ({len(sets)} sets)")
        return Outcome(
            result=workout,
            xp_delta=outcome.xp_delta + removed.xp_delta,
            level_change=outcome.level_change + removed.level_change,
            effects=[_immediate(FITNESS)],
        )

    # ============================================
    # RIVALS
    # ============================================

    def add_rival(
        self,
        personality: Personality = Personality.RIVAL,
        rival_kind: RivalKind = RivalKind.SYNTHETIC,
        name: Optional[str] = None,
        peer_user_id: Optional[str] = None,
    ) -> Outcome:
        if RivalKind(rival_kind) == RivalKind.PEER and not peer_user_id:
            raise ValueError("Peer rivals need a peer_user_id")
        rival_id = new_entity_id()
        character = assign_character(personality, rival_id)
        relationship = RivalRelationship(
            id=rival_id,
            rival_kind=rival_kind,
            personality=personality,
            name=name or character.name,
            character=character.id,
            peer_user_id=peer_user_id,
            created_at=self.clock(),
        )
        relationship = self.store.insert(FITNESS, "rivals", relationship)
        logger.info(f"Rival added: {relationship.name} [{relationship.personality.value}]")
        return Outcome(result=relationship, effects=[_immediate(FITNESS)])

    def update_rival(self, rival_id: str, **changes: Any) -> Outcome:
        """Rename, pause or re-personality a rival. The scoreboard is encounter-only."""
        scoreboard = RIVAL_SCOREBOARD_FIELDS.intersection(changes)
        if scoreboard:
            raise ValueError(f"Cannot set {', '.join(sorted(scoreboard))} directly")
        self._check_protected(changes)
        relationship = self.store.update(FITNESS, "rivals", rival_id, **changes)
        return Outcome(result=relationship, effects=[_debounced(FITNESS)])

    def remove_rival(self, rival_id: str) -> Outcome:
        relationship = self.store.delete(FITNESS, "rivals", rival_id)
        return Outcome(result=relationship, effects=[_immediate(FITNESS)])

    def _save_relationship(self, relationship: RivalRelationship) -> RivalRelationship:
        changes = relationship.model_dump(exclude={"id", "created_at", "updated_at"})
        return self.store.update(FITNESS, "rivals", relationship.id, **changes)

    def advance_rival_encounter(
        self,
        rival_id: str,
        rival_metrics: Optional[MetricSnapshot] = None,
        metrics_domain: Domain = FITNESS,
        days: int = 7,
    ) -> Outcome:
        """Run one encounter now and record it on the relationship."""
        relationship = self.store.get(FITNESS, "rivals", rival_id)
        now = self.clock()
        user = metrics_for(metrics_domain, self.store.snapshot(metrics_domain), now, days)
        rival = rival_metrics
        if rival is None:
            rival = rival_metrics_for(relationship, user, rng=self.rng)
        if rival is None:
            raise ValueError(f"No metrics available for peer rival {rival_id}")

        updated, result = run_encounter(relationship, user, rival, self.rng, now, self.rival_config)
        self._save_relationship(updated)
        return Outcome(result=result, effects=[_debounced(FITNESS)])

    def run_showdown(
        self,
        peer_metrics: Optional[Dict[str, MetricSnapshot]] = None,
        metrics_domain: Domain = FITNESS,
        days: int = 7,
    ) -> Outcome:
        """Weekly showdown across every active rival."""
        now = self.clock()
        user = metrics_for(metrics_domain, self.store.snapshot(metrics_domain), now, days)
        relationships = self.store.list(FITNESS, "rivals")
        summary = run_showdown(user, relationships, peer_metrics, self.rng, now, self.rival_config)

        for before, after in zip(relationships, summary.relationships):
            if after is not before and after != before:
                self._save_relationship(after)

        effects = [_debounced(FITNESS)] if summary.entries else []
        return Outcome(result=summary, effects=effects)

    # ============================================
    # SYNC & DATA
    # ============================================

    def request_sync(self, domain: Optional[Domain] = None, force_refresh: bool = False) -> Outcome:
        domains = [Domain(domain)] if domain is not None else list(Domain)
        return Outcome(effects=[PullEffect(domain=d, force_refresh=force_refresh) for d in domains])

    def erase_all_data(self, domain: Optional[Domain] = None) -> Outcome:
        """Wipe local data and push the empty state over the server copy."""
        domains = [Domain(domain)] if domain is not None else list(Domain)
        for d in domains:
            self.store.erase(d)
        return Outcome(effects=[_immediate(d) for d in domains])
