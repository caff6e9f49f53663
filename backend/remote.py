"""
Questline - Remote Persistence Client
httpx transport for snapshot sync, unload beacons and the XP award service
"""

import asyncio
from datetime import datetime
from typing import Optional, Dict, Any, Set

import httpx

from config import get_sync_config
from models import Domain, SyncEnvelope, SyncPushResponse, XPAwardRequest, XPAwardResponse
from logger import logger


class SyncTransportError(Exception):
    """Network or server failure talking to the persistence collaborator."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteClient:
    """Thin async client for the sync endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_id: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = get_sync_config()
        self.base_url = (base_url or config.server_url).rstrip("/")
        self.user_id = user_id or config.user_id
        self.timeout = timeout if timeout is not None else config.request_timeout_seconds
        self.transport = transport
        self._beacons: Set[asyncio.Task] = set()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"X-User-Id": self.user_id},
            transport=self.transport,
        )

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=payload)
        except httpx.HTTPError as e:
            raise SyncTransportError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise SyncTransportError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise SyncTransportError(f"{method} {path} returned invalid JSON") from e

    # ============================================
    # SNAPSHOT SYNC
    # ============================================

    async def fetch_snapshot(self, domain: Domain) -> Optional[SyncEnvelope]:
        """GET the server copy; None when the server holds nothing for this domain."""
        body = await self._request("GET", f"/api/{Domain(domain).value}/sync")
        if not body or not body.get("data"):
            return None
        return SyncEnvelope.model_validate(body)

    async def push_snapshot(self, domain: Domain, data: Dict[str, Any]) -> datetime:
        """POST a full snapshot; returns the server's ``updated_at``."""
        body = await self._request("POST", f"/api/{Domain(domain).value}/sync", {"data": data})
        if not body:
            raise SyncTransportError("Sync push returned an empty body")
        return SyncPushResponse.model_validate(body).updated_at

    def send_beacon(self, domain: Domain, data: Dict[str, Any]) -> None:
        """
        Fire-and-forget push used when the process is going away.

        Inside a running loop the request is scheduled as a task; otherwise it
        is sent synchronously with the configured timeout. Failures are logged.
        """
        path = f"/api/{Domain(domain).value}/sync"
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(self._beacon(path, data))
            self._beacons.add(task)
            task.add_done_callback(self._beacons.discard)
            return

        try:
            transport = self.transport if isinstance(self.transport, httpx.BaseTransport) else None
            with httpx.Client(base_url=self.base_url, timeout=self.timeout,
                              headers={"X-User-Id": self.user_id}, transport=transport) as client:
                client.post(path, json={"data": data})
        except httpx.HTTPError as e:
            logger.warning(f"Beacon for {path} failed: {e}")

    async def _beacon(self, path: str, data: Dict[str, Any]) -> None:
        try:
            await self._request("POST", path, {"data": data})
        except SyncTransportError as e:
            logger.warning(f"Beacon for {path} failed: {e}")

    # ============================================
    # AWARD SERVICE
    # ============================================

    async def award_xp(self, award: XPAwardRequest) -> XPAwardResponse:
        body = await self._request("POST", "/api/xp", award.model_dump(mode="json"))
        return XPAwardResponse.model_validate(body or {"total_xp": 0})
