from __future__ import annotations

from pathlib import Path
from tempfile import TemporaryDirectory
import unittest

from models import Category, Domain, Profile, SyncStatus, Task, Workout
from store import EntityNotFoundError, LocalStore, new_entity_id
from tests.helpers import FixedClock, at


class TestLocalStoreCommands(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FixedClock()
        self.store = LocalStore(clock=self.clock)

    def test_insert_marks_dirty_and_stamps(self) -> None:
        task = self.store.insert(Domain.TASKS, "tasks", Task(id="t1", title="Write"))
        state = self.store.sync_state(Domain.TASKS)
        self.assertTrue(state.pending_sync)
        self.assertEqual(state.revision, 1)
        self.assertEqual(task.updated_at, self.clock.now)
        self.assertFalse(self.store.sync_state(Domain.FITNESS).pending_sync)

    def test_update_validates_and_restamps(self) -> None:
        self.store.insert(Domain.TASKS, "tasks", Task(id="t1", title="Write"))
        self.clock.advance(seconds=30)
        task = self.store.update(Domain.TASKS, "tasks", "t1", title="Rewrite", tier=2)
        self.assertEqual(task.title, "Rewrite")
        self.assertEqual(task.updated_at, at(seconds=30))
        with self.assertRaises(ValueError):
            self.store.update(Domain.TASKS, "tasks", "t1", tier=9)

    def test_categories_have_no_updated_at(self) -> None:
        category = self.store.insert(Domain.TASKS, "categories", Category(id="c1", name="Home"))
        self.assertFalse(hasattr(category, "updated_at"))

    def test_unknown_id_raises_entity_not_found(self) -> None:
        with self.assertRaises(EntityNotFoundError) as ctx:
            self.store.update(Domain.TASKS, "tasks", "missing", title="x")
        self.assertIsInstance(ctx.exception, KeyError)
        self.assertEqual(ctx.exception.entity_id, "missing")
        with self.assertRaises(EntityNotFoundError):
            self.store.delete(Domain.FITNESS, "workouts", "missing")

    def test_insert_rejects_duplicates_and_wrong_types(self) -> None:
        self.store.insert(Domain.TASKS, "tasks", Task(id="t1", title="Write"))
        with self.assertRaises(ValueError):
            self.store.insert(Domain.TASKS, "tasks", Task(id="t1", title="Again"))
        with self.assertRaises(TypeError):
            self.store.insert(Domain.TASKS, "tasks", Workout(id="w1"))

    def test_queries_return_copies(self) -> None:
        self.store.insert(Domain.TASKS, "tasks", Task(id="t1", title="Write"))
        task = self.store.get(Domain.TASKS, "tasks", "t1")
        task.title = "Mutated"
        self.assertEqual(self.store.get(Domain.TASKS, "tasks", "t1").title, "Write")

    def test_put_state_rejects_collections(self) -> None:
        with self.assertRaises(ValueError):
            self.store.put_state(Domain.TASKS, tasks=[])
        self.store.put_state(Domain.TASKS, profile=Profile(xp=10))
        self.assertEqual(self.store.profile(Domain.TASKS).xp, 10)

    def test_mark_synced_keeps_dirty_when_revision_moved(self) -> None:
        self.store.insert(Domain.TASKS, "tasks", Task(id="t1", title="Write"))
        revision = self.store.revision(Domain.TASKS)
        self.store.insert(Domain.TASKS, "tasks", Task(id="t2", title="Mid-flight edit"))

        self.assertFalse(self.store.mark_synced(Domain.TASKS, at(days=1), revision))
        state = self.store.sync_state(Domain.TASKS)
        self.assertTrue(state.pending_sync)
        self.assertEqual(state.last_synced_at, at(days=1))

        self.assertTrue(self.store.mark_synced(Domain.TASKS, at(days=2), self.store.revision(Domain.TASKS)))
        self.assertFalse(self.store.sync_state(Domain.TASKS).pending_sync)

    def test_erase_empties_and_marks_dirty(self) -> None:
        self.store.insert(Domain.TASKS, "tasks", Task(id="t1", title="Write"))
        self.store.mark_synced(Domain.TASKS, at(days=1), self.store.revision(Domain.TASKS))
        self.store.erase(Domain.TASKS)
        self.assertEqual(self.store.list(Domain.TASKS, "tasks"), [])
        state = self.store.sync_state(Domain.TASKS)
        self.assertTrue(state.pending_sync)
        self.assertEqual(state.last_synced_at, at(days=1))

    def test_subscribe_and_unsubscribe(self) -> None:
        seen = []
        unsubscribe = self.store.subscribe(lambda domain, kind: seen.append((domain, kind)))
        self.store.insert(Domain.TASKS, "tasks", Task(id="t1", title="Write"))
        unsubscribe()
        self.store.insert(Domain.TASKS, "tasks", Task(id="t2", title="Quiet"))
        self.assertEqual(seen, [(Domain.TASKS, "tasks")])

    def test_new_entity_ids_are_unique(self) -> None:
        self.assertEqual(len({new_entity_id() for _ in range(200)}), 200)


class TestLocalStorePersistence(unittest.TestCase):
    def test_round_trip_through_disk(self) -> None:
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "store.json"
            store = LocalStore(str(path), clock=FixedClock())
            store.insert(Domain.TASKS, "tasks", Task(id="t1", title="Persist me", tier=2))
            store.put_state(Domain.FITNESS, records={"squat": 120.0})
            store.set_sync_status(Domain.TASKS, SyncStatus.SYNCING)

            loaded = LocalStore.load(str(path))
            self.assertEqual(loaded.get(Domain.TASKS, "tasks", "t1").tier, 2)
            self.assertEqual(loaded.snapshot(Domain.FITNESS).records, {"squat": 120.0})
            state = loaded.sync_state(Domain.TASKS)
            self.assertTrue(state.pending_sync)
            self.assertEqual(state.status, SyncStatus.IDLE)

    def test_missing_file_loads_empty(self) -> None:
        with TemporaryDirectory() as tmp:
            store = LocalStore.load(str(Path(tmp) / "absent.json"))
            self.assertEqual(store.list(Domain.TASKS, "tasks"), [])


if __name__ == "__main__":
    unittest.main()
