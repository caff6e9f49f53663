from __future__ import annotations

from datetime import timedelta
import unittest

from achievements import (
    Achievement,
    AchievementChecker,
    get_definitions,
    merge_achievements,
    points_for,
    unlock,
)
from models import AchievementRecord, Domain, ExerciseSet, Profile, Task
from tests.helpers import BASE_TIME


class TestAchievementChecker(unittest.TestCase):
    def test_first_task_unlocks(self) -> None:
        earned = AchievementChecker(Domain.TASKS).evaluate(Profile(total_completed=1), [])
        self.assertIn("first-task", earned)
        self.assertNotIn("task-10", earned)

    def test_evaluation_is_idempotent(self) -> None:
        checker = AchievementChecker(Domain.TASKS)
        profile = Profile(total_completed=1)
        profile = unlock(profile, checker.evaluate(profile, []), BASE_TIME)
        self.assertEqual(checker.evaluate(profile, []), [])

    def test_never_revoked_when_metric_drops(self) -> None:
        profile = unlock(Profile(total_completed=1), ["first-task"], BASE_TIME)
        dropped = profile.model_copy(update={"total_completed": 0})
        self.assertEqual(AchievementChecker(Domain.TASKS).evaluate(dropped, []), [])
        self.assertIn("first-task", dropped.achievement_ids())

    def test_unit_based_rules(self) -> None:
        units = [
            Task(id="t1", title="Big", tier=3, difficulty="epic", completed=True),
            Task(id="t2", title="Open", tier=3),
        ]
        earned = AchievementChecker(Domain.TASKS).evaluate(Profile(), units)
        self.assertIn("epic-task", earned)
        self.assertIn("major-task", earned)

    def test_strength_rule_reads_sets(self) -> None:
        units = [ExerciseSet(id="s1", exercise_id="bench", weight=140, reps=1, completed=True, is_pr=True)]
        earned = AchievementChecker(Domain.FITNESS).evaluate(Profile(), units)
        self.assertIn("bench-135", earned)
        self.assertIn("first-pr", earned)
        self.assertNotIn("squat-225", earned)

    def test_failing_rule_is_skipped(self) -> None:
        definitions = [
            Achievement(
                code="broken", domain=Domain.TASKS, name="Broken", description="", icon="x",
                category="special", metric="no-such-metric", threshold_value=1, points=1, rarity="common",
            ),
        ] + get_definitions(Domain.TASKS)
        checker = AchievementChecker(Domain.TASKS, definitions)
        with self.assertLogs("questline", level="ERROR"):
            earned = checker.evaluate(Profile(total_completed=1), [])
        self.assertNotIn("broken", earned)
        self.assertIn("first-task", earned)

    def test_progress_reports_percentage(self) -> None:
        progress = {
            p.achievement.code: p
            for p in AchievementChecker(Domain.TASKS).progress(Profile(total_completed=5), [])
        }
        self.assertEqual(progress["task-10"].percentage, 50.0)
        self.assertFalse(progress["task-10"].is_complete)


class TestUnlockReconciliation(unittest.TestCase):
    def test_merge_keeps_earliest_unlock(self) -> None:
        early = AchievementRecord(id="first-task", unlocked_at=BASE_TIME)
        late = AchievementRecord(id="first-task", unlocked_at=BASE_TIME + timedelta(days=1))
        other = AchievementRecord(id="streak-3", unlocked_at=BASE_TIME + timedelta(hours=1))
        merged = merge_achievements([late], [early, other])
        self.assertEqual([r.id for r in merged], ["first-task", "streak-3"])
        self.assertEqual(merged[0].unlocked_at, BASE_TIME)

    def test_merge_is_commutative(self) -> None:
        ours = [AchievementRecord(id="a", unlocked_at=BASE_TIME)]
        theirs = [AchievementRecord(id="b", unlocked_at=BASE_TIME + timedelta(minutes=5))]
        self.assertEqual(merge_achievements(ours, theirs), merge_achievements(theirs, ours))

    def test_unlock_recomputes_points_and_ignores_duplicates(self) -> None:
        profile = unlock(Profile(), ["first-task", "first-task"], BASE_TIME)
        self.assertEqual(profile.achievement_points, points_for("first-task"))
        self.assertIs(unlock(profile, ["first-task"], BASE_TIME), profile)

    def test_unknown_id_from_server_is_kept(self) -> None:
        profile = unlock(Profile(), ["server-only"], BASE_TIME)
        self.assertIn("server-only", profile.achievement_ids())
        self.assertEqual(profile.achievement_points, 0)


if __name__ == "__main__":
    unittest.main()
