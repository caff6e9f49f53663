"""
Questline - Local Entity Store
Offline-first typed collections per domain, with dirty tracking and JSON persistence
"""

import json
import os
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any, Callable

from models import (
    Domain, Entity, TrackedEntity, Profile, Snapshot, SyncState, SyncStatus,
    empty_snapshot, parse_snapshot, utcnow,
)
from logger import logger


STORE_FORMAT_VERSION = 1


class EntityNotFoundError(KeyError):
    """Raised when a command names an entity id the store does not hold."""

    def __init__(self, domain: Domain, kind: str, entity_id: str):
        super().__init__(f"{Domain(domain).value}/{kind}/{entity_id}")
        self.domain = Domain(domain)
        self.kind = kind
        self.entity_id = entity_id


def new_entity_id() -> str:
    """Client-generated id: nanosecond timestamp plus a random suffix."""
    return f"{time.time_ns()}-{uuid.uuid4().hex[:8]}"


class LocalStore:
    """
    Authoritative local copy of every domain.

    All mutations go through the command methods below. Each one stamps
    ``updated_at`` on entities that carry it, sets ``pending_sync`` and bumps
    the domain revision. Queries return copies; callers never hold live state.
    """

    def __init__(self, path: Optional[str] = None, clock: Callable[[], datetime] = utcnow):
        self.path = Path(path) if path else None
        self.clock = clock
        self._snapshots: Dict[Domain, Snapshot] = {d: empty_snapshot(d) for d in Domain}
        self._sync: Dict[Domain, SyncState] = {d: SyncState() for d in Domain}
        self._subscribers: List[Callable[[Domain, str], None]] = []

    # ============================================
    # QUERIES
    # ============================================

    def snapshot(self, domain: Domain) -> Snapshot:
        return self._snapshots[Domain(domain)].model_copy(deep=True)

    def profile(self, domain: Domain) -> Profile:
        return self._snapshots[Domain(domain)].profile.model_copy(deep=True)

    def sync_state(self, domain: Domain) -> SyncState:
        return self._sync[Domain(domain)].model_copy()

    def revision(self, domain: Domain) -> int:
        return self._sync[Domain(domain)].revision

    def list(self, domain: Domain, kind: str) -> List[Entity]:
        return [e.model_copy(deep=True) for e in self._collection(domain, kind)]

    def find(self, domain: Domain, kind: str, entity_id: str) -> Optional[Entity]:
        index = self._index_of(domain, kind, entity_id)
        if index is None:
            return None
        return self._collection(domain, kind)[index].model_copy(deep=True)

    def get(self, domain: Domain, kind: str, entity_id: str) -> Entity:
        entity = self.find(domain, kind, entity_id)
        if entity is None:
            raise EntityNotFoundError(domain, kind, entity_id)
        return entity

    # ============================================
    # COMMANDS
    # ============================================

    def insert(self, domain: Domain, kind: str, entity: Entity) -> Entity:
        collection = self._collection(domain, kind)
        expected = type(self._snapshots[Domain(domain)]).COLLECTION_TYPES[kind]
        if not isinstance(entity, expected):
            raise TypeError(f"{kind} holds {expected.__name__}, got {type(entity).__name__}")
        if self._index_of(domain, kind, entity.id) is not None:
            raise ValueError(f"Duplicate id '{entity.id}' in {kind}")

        stored = self._stamp(entity.model_copy(deep=True))
        collection.append(stored)
        self._touch(domain, kind)
        return stored.model_copy(deep=True)

    def update(self, domain: Domain, kind: str, entity_id: str, **changes: Any) -> Entity:
        """Apply field changes to one entity. Changes are validated by the model."""
        collection = self._collection(domain, kind)
        index = self._index_of(domain, kind, entity_id)
        if index is None:
            raise EntityNotFoundError(domain, kind, entity_id)

        current = collection[index]
        data = current.model_dump()
        data.update(changes)
        data["id"] = current.id
        updated = self._stamp(type(current).model_validate(data))
        collection[index] = updated
        self._touch(domain, kind)
        return updated.model_copy(deep=True)

    def delete(self, domain: Domain, kind: str, entity_id: str) -> Entity:
        collection = self._collection(domain, kind)
        index = self._index_of(domain, kind, entity_id)
        if index is None:
            raise EntityNotFoundError(domain, kind, entity_id)
        removed = collection.pop(index)
        self._touch(domain, kind)
        return removed

    def put_state(self, domain: Domain, **fields: Any) -> None:
        """Replace non-collection snapshot fields (profile, daily_stats, records)."""
        snapshot = self._snapshots[Domain(domain)]
        for name, value in fields.items():
            if name in snapshot.ENTITY_COLLECTIONS or name not in type(snapshot).model_fields:
                raise ValueError(f"'{name}' is not a replaceable field of {type(snapshot).__name__}")
            setattr(snapshot, name, value)
        self._touch(domain, "state")

    def put_profile(self, domain: Domain, profile: Profile) -> None:
        self.put_state(domain, profile=profile)

    def replace_snapshot(self, domain: Domain, snapshot: Snapshot, dirty: bool = False) -> None:
        """Install a snapshot produced by sync. Timestamps are kept as received."""
        domain = Domain(domain)
        if not isinstance(snapshot, type(self._snapshots[domain])):
            snapshot = parse_snapshot(domain, snapshot.model_dump())
        self._snapshots[domain] = snapshot.model_copy(deep=True)
        state = self._sync[domain]
        state.revision += 1
        state.pending_sync = dirty
        self._notify(domain, "snapshot")
        self.save()

    def mark_synced(self, domain: Domain, server_ts: datetime, revision: int) -> bool:
        """
        Record a confirmed push of the snapshot taken at ``revision``.

        Returns True when the local state is clean; False when something
        changed while the request was in flight and another push is needed.
        """
        state = self._sync[Domain(domain)]
        state.last_synced_at = server_ts
        state.status = SyncStatus.IDLE
        state.error = None
        state.retry_count = 0
        clean = state.revision == revision
        if clean:
            state.pending_sync = False
        self.save()
        return clean

    def mark_pulled(self, domain: Domain, server_ts: datetime) -> None:
        state = self._sync[Domain(domain)]
        state.last_synced_at = server_ts
        state.status = SyncStatus.IDLE
        state.error = None
        self.save()

    def set_sync_status(self, domain: Domain, status: SyncStatus, error: Optional[str] = None) -> None:
        state = self._sync[Domain(domain)]
        state.status = status
        state.error = error

    def set_retry_count(self, domain: Domain, retry_count: int) -> None:
        self._sync[Domain(domain)].retry_count = retry_count

    def erase(self, domain: Optional[Domain] = None) -> None:
        """
        Drop every entity of a domain (or all domains).

        The emptied state is marked dirty so the next push overwrites the
        server copy; ``last_synced_at`` is kept.
        """
        domains = [Domain(domain)] if domain is not None else list(Domain)
        for d in domains:
            self._snapshots[d] = empty_snapshot(d)
            self._touch(d, "snapshot")
        logger.info(f"Erased local data for: {', '.join(d.value for d in domains)}")

    # ============================================
    # SUBSCRIPTIONS
    # ============================================

    def subscribe(self, callback: Callable[[Domain, str], None]) -> Callable[[], None]:
        """Call ``callback(domain, kind)`` after every committed mutation."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # ============================================
    # PERSISTENCE
    # ============================================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": STORE_FORMAT_VERSION,
            "domains": {
                d.value: {
                    "snapshot": self._snapshots[d].model_dump(mode="json"),
                    "sync": self._sync[d].model_dump(mode="json"),
                }
                for d in Domain
            },
        }

    def save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f)
        os.replace(tmp_path, self.path)

    @classmethod
    def load(cls, path: str, clock: Callable[[], datetime] = utcnow) -> "LocalStore":
        """Open a persisted store; a missing file yields an empty store."""
        store = cls(path, clock=clock)
        if not store.path.exists():
            return store

        with open(store.path, "r", encoding="utf-8") as f:
            raw = json.load(f)

        for name, payload in raw.get("domains", {}).items():
            try:
                domain = Domain(name)
            except ValueError:
                logger.warning(f"Ignoring unknown domain '{name}' in {store.path}")
                continue
            store._snapshots[domain] = parse_snapshot(domain, payload.get("snapshot") or {})
            store._sync[domain] = SyncState.model_validate(payload.get("sync") or {})
            # A sync that was running when the process died is not running now
            store._sync[domain].status = SyncStatus.IDLE

        logger.info(f"Local store loaded from {store.path}")
        return store

    # ============================================
    # INTERNALS
    # ============================================

    def _collection(self, domain: Domain, kind: str) -> List[Entity]:
        return self._snapshots[Domain(domain)].collection(kind)

    def _index_of(self, domain: Domain, kind: str, entity_id: str) -> Optional[int]:
        for i, entity in enumerate(self._collection(domain, kind)):
            if entity.id == entity_id:
                return i
        return None

    def _stamp(self, entity: Entity) -> Entity:
        if isinstance(entity, TrackedEntity):
            entity.updated_at = self.clock()
        return entity

    def _touch(self, domain: Domain, kind: str) -> None:
        state = self._sync[Domain(domain)]
        state.pending_sync = True
        state.revision += 1
        self._notify(Domain(domain), kind)
        self.save()

    def _notify(self, domain: Domain, kind: str) -> None:
        for callback in list(self._subscribers):
            try:
                callback(domain, kind)
            except Exception:
                logger.exception("Store subscriber failed")
