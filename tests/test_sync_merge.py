from __future__ import annotations

import unittest

from models import (
    AchievementRecord,
    Category,
    Domain,
    FitnessSnapshot,
    Profile,
    Task,
    TaskSnapshot,
)
from sync import merge_collection, merge_profile, merge_records, merge_snapshots
from tests.helpers import at


def _by_id(entities):
    return {e.id: e for e in entities}


class TestMergeCollection(unittest.TestCase):
    def test_newer_local_completion_survives_older_remote(self) -> None:
        local = Task(id="T", title="Report", completed=True, updated_at=at(seconds=100))
        remote = Task(id="T", title="Report", completed=False, updated_at=at(seconds=90))
        merged = merge_collection([local], [remote])
        self.assertEqual(len(merged), 1)
        self.assertTrue(merged[0].completed)

    def test_newer_remote_wins(self) -> None:
        local = Task(id="T", title="Old title", updated_at=at(seconds=10))
        remote = Task(id="T", title="New title", updated_at=at(seconds=20))
        self.assertEqual(merge_collection([local], [remote])[0].title, "New title")

    def test_equal_or_missing_timestamps_keep_local(self) -> None:
        local = Task(id="T", title="Local", updated_at=at(seconds=10))
        remote = Task(id="T", title="Remote", updated_at=at(seconds=10))
        self.assertEqual(merge_collection([local], [remote])[0].title, "Local")

        local_cat = Category(id="c", name="Local")
        remote_cat = Category(id="c", name="Remote")
        self.assertEqual(merge_collection([local_cat], [remote_cat])[0].name, "Local")

    def test_union_of_one_sided_entities(self) -> None:
        merged = _by_id(merge_collection(
            [Task(id="a", title="local only")],
            [Task(id="b", title="remote only")],
        ))
        self.assertEqual(set(merged), {"a", "b"})

    def test_commutative_with_distinct_timestamps(self) -> None:
        left = [
            Task(id="a", title="left a", updated_at=at(seconds=5)),
            Task(id="b", title="left b", updated_at=at(seconds=50)),
            Task(id="c", title="left only", updated_at=at(seconds=1)),
        ]
        right = [
            Task(id="a", title="right a", updated_at=at(seconds=7)),
            Task(id="b", title="right b", updated_at=at(seconds=40)),
            Task(id="d", title="right only", updated_at=at(seconds=2)),
        ]
        self.assertEqual(
            _by_id(merge_collection(left, right)),
            _by_id(merge_collection(right, left)),
        )


class TestMergeProfile(unittest.TestCase):
    def test_more_completions_wins_and_achievements_union(self) -> None:
        local = Profile(xp=100, total_completed=3,
                        achievements=[AchievementRecord(id="first-task", unlocked_at=at())])
        remote = Profile(xp=250, total_completed=5,
                         achievements=[AchievementRecord(id="streak-3", unlocked_at=at(seconds=5))])
        profile, local_won = merge_profile(local, remote)
        self.assertFalse(local_won)
        self.assertEqual(profile.xp, 250)
        self.assertEqual(profile.achievement_ids(), {"first-task", "streak-3"})

    def test_tie_keeps_local(self) -> None:
        profile, local_won = merge_profile(Profile(xp=1, total_completed=2), Profile(xp=9, total_completed=2))
        self.assertTrue(local_won)
        self.assertEqual(profile.xp, 1)

    def test_records_take_the_max(self) -> None:
        merged = merge_records({"squat": 100, "bench": 80}, {"squat": 90, "deadlift": 140})
        self.assertEqual(merged, {"squat": 100, "bench": 80, "deadlift": 140})


class TestMergeSnapshots(unittest.TestCase):
    def test_task_snapshot_merge(self) -> None:
        local = TaskSnapshot(
            profile=Profile(total_completed=1),
            tasks=[Task(id="T", title="Report", completed=True, updated_at=at(seconds=100))],
        )
        remote = TaskSnapshot(
            profile=Profile(total_completed=0),
            tasks=[Task(id="T", title="Report", completed=False, updated_at=at(seconds=90)),
                   Task(id="U", title="From phone", updated_at=at(seconds=95))],
        )
        merged = merge_snapshots(Domain.TASKS, local, remote)
        tasks = _by_id(merged.tasks)
        self.assertTrue(tasks["T"].completed)
        self.assertIn("U", tasks)
        self.assertEqual(merged.profile.total_completed, 1)

    def test_fitness_snapshot_merges_records(self) -> None:
        merged = merge_snapshots(
            Domain.FITNESS,
            FitnessSnapshot(records={"squat": 100}),
            FitnessSnapshot(records={"squat": 120}),
        )
        self.assertEqual(merged.records, {"squat": 120})


if __name__ == "__main__":
    unittest.main()
