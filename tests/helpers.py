from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx


BASE_TIME = datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)


def at(seconds: float = 0, days: float = 0) -> datetime:
    return BASE_TIME + timedelta(seconds=seconds, days=days)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeSyncServer:
    """In-memory stand-in for the persistence collaborator, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.snapshots: Dict[str, Dict[str, Any]] = {}
        self.posts: List[str] = []
        self.awards: List[Dict[str, Any]] = []
        self.achievements: List[str] = []
        self.user_ids: List[str] = []
        self.fail = False
        self._tick = 0

    def next_timestamp(self) -> datetime:
        self._tick += 1
        return at(days=1, seconds=self._tick)

    def seed(self, domain: str, data: Dict[str, Any], updated_at: datetime) -> None:
        self.snapshots[domain] = {"data": data, "updated_at": updated_at.isoformat()}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.user_ids.append(request.headers.get("X-User-Id", ""))
        if self.fail:
            return httpx.Response(503, json={"detail": "unavailable"})

        path = request.url.path
        if path == "/api/xp":
            body = json.loads(request.content)
            self.awards.append(body)
            total = sum(a["xp_amount"] for a in self.awards)
            return httpx.Response(200, json={"total_xp": total, "achievements": self.achievements})

        domain = path.split("/")[2]
        if request.method == "GET":
            stored = self.snapshots.get(domain)
            return httpx.Response(200, json=stored or {"data": None, "updated_at": None})

        body = json.loads(request.content)
        updated_at = self.next_timestamp()
        self.seed(domain, body["data"], updated_at)
        self.posts.append(domain)
        return httpx.Response(200, json={"updated_at": updated_at.isoformat()})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def stored(self, domain: str) -> Optional[Dict[str, Any]]:
        entry = self.snapshots.get(domain)
        return entry["data"] if entry else None
