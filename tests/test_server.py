from __future__ import annotations

import asyncio
import unittest
from unittest.mock import AsyncMock, patch

import httpx

import main
from models import Profile, TaskSnapshot
from tests.helpers import at


def call(method: str, path: str, **kwargs) -> httpx.Response:
    async def send() -> httpx.Response:
        transport = httpx.ASGITransport(app=main.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://server.test") as client:
            return await client.request(method, path, **kwargs)

    return asyncio.run(send())


class TestHealth(unittest.TestCase):
    def test_health_reports_version(self) -> None:
        response = call("GET", "/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "healthy")
        self.assertEqual(body["database"], "disconnected")


class TestSyncEndpoints(unittest.TestCase):
    def test_pull_without_snapshot_returns_empty_body(self) -> None:
        with patch("main.get_snapshot", new=AsyncMock(return_value=None)) as get_snapshot:
            response = call("GET", "/api/tasks/sync", headers={"X-User-Id": "alice"})
        self.assertEqual(response.json(), {"data": None, "updated_at": None})
        get_snapshot.assert_awaited_once_with("alice", "tasks")

    def test_pull_returns_stored_snapshot(self) -> None:
        stored = {"data": {"tasks": []}, "updated_at": at()}
        with patch("main.get_snapshot", new=AsyncMock(return_value=stored)):
            response = call("GET", "/api/fitness/sync")
        body = response.json()
        self.assertEqual(body["data"], {"tasks": []})
        self.assertTrue(body["updated_at"].startswith("2026-03-10T14:00:00"))

    def test_unknown_domain_is_404(self) -> None:
        self.assertEqual(call("GET", "/api/chores/sync").status_code, 404)

    def test_push_saves_and_returns_timestamp(self) -> None:
        data = TaskSnapshot().model_dump(mode="json")
        with patch("main.save_snapshot", new=AsyncMock(return_value=at(seconds=5))) as save_snapshot:
            response = call("POST", "/api/tasks/sync", json={"data": data})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["updated_at"].startswith("2026-03-10T14:00:05"))
        save_snapshot.assert_awaited_once_with("local", "tasks", data)

    def test_push_rejects_malformed_snapshot(self) -> None:
        with patch("main.save_snapshot", new=AsyncMock()) as save_snapshot:
            response = call("POST", "/api/tasks/sync", json={"data": {"tasks": "not a list"}})
        self.assertEqual(response.status_code, 400)
        save_snapshot.assert_not_awaited()


class TestAwardEndpoint(unittest.TestCase):
    def test_award_unions_stored_and_new_achievements(self) -> None:
        snapshot = TaskSnapshot(profile=Profile(total_completed=1)).model_dump(mode="json")
        with patch("main.record_award", new=AsyncMock()) as record_award, \
                patch("main.get_award_total", new=AsyncMock(return_value=45)), \
                patch("main.get_user_achievements", new=AsyncMock(return_value=["legacy-badge"])), \
                patch("main.get_snapshot", new=AsyncMock(return_value={"data": snapshot, "updated_at": at()})), \
                patch("main.save_user_achievements", new=AsyncMock()) as save_user_achievements:
            response = call("POST", "/api/xp", headers={"X-User-Id": "alice"}, json={
                "domain": "tasks", "action": "task_complete", "xp_amount": 15, "unit_id": "t1",
            })

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["total_xp"], 45)
        self.assertEqual(body["achievements"][0], "legacy-badge")
        self.assertIn("first-task", body["achievements"])
        record_award.assert_awaited_once_with("alice", "tasks", "task_complete", 15, "t1", {})
        saved = save_user_achievements.await_args.args
        self.assertEqual(saved[:2], ("alice", "tasks"))
        self.assertIn("first-task", saved[2])

    def test_award_without_snapshot(self) -> None:
        with patch("main.record_award", new=AsyncMock()), \
                patch("main.get_award_total", new=AsyncMock(return_value=15)), \
                patch("main.get_user_achievements", new=AsyncMock(return_value=[])), \
                patch("main.get_snapshot", new=AsyncMock(return_value=None)), \
                patch("main.save_user_achievements", new=AsyncMock()) as save_user_achievements:
            response = call("POST", "/api/xp", json={"domain": "fitness", "action": "set_logged", "xp_amount": 15})

        self.assertEqual(response.json(), {"total_xp": 15, "achievements": []})
        save_user_achievements.assert_not_awaited()

    def test_negative_award_is_rejected(self) -> None:
        response = call("POST", "/api/xp", json={"domain": "tasks", "action": "x", "xp_amount": -5})
        self.assertEqual(response.status_code, 422)


if __name__ == "__main__":
    unittest.main()
