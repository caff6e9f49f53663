"""
Questline - Sync Engine
Reconciles the local store with the server copy: debounced pushes, backoff
retries, decision-table pulls and per-entity last-writer-wins merges
"""

import asyncio
from enum import Enum
from typing import Optional, List, Dict, Iterable, Set, Tuple, Coroutine, Any

from achievements import merge_achievements, points_for, unlock
from config import get_sync_config, SyncConfig
from models import (
    Domain, Entity, Profile, Snapshot, FitnessSnapshot, SyncStatus,
    PushEffect, PullEffect, AwardEffect, PushMode, XPAwardRequest,
    parse_snapshot, utcnow,
)
from remote import RemoteClient, SyncTransportError
from store import LocalStore
from logger import logger


class PullOutcome(str, Enum):
    NO_REMOTE = "no_remote"
    REPLACED = "replaced"
    MERGED = "merged"
    UNCHANGED = "unchanged"
    OFFLINE = "offline"
    FAILED = "failed"


# ============================================
# MERGE
# ============================================

def _remote_is_newer(local: Entity, remote: Entity) -> bool:
    local_ts = getattr(local, "updated_at", None)
    remote_ts = getattr(remote, "updated_at", None)
    if local_ts is None or remote_ts is None:
        return False
    return remote_ts > local_ts


def merge_collection(local: Iterable[Entity], remote: Iterable[Entity], kind: str = "") -> List[Entity]:
    """
    Per-entity last-writer-wins.

    Seeded with the remote entities; local-only entities are added; entities
    on both sides keep whichever copy has the later ``updated_at``. Equal or
    missing timestamps keep the local copy.
    """
    merged: Dict[str, Entity] = {}
    for entity in remote:
        merged[entity.id] = entity

    for entity in local:
        other = merged.get(entity.id)
        if other is None:
            # No tombstones: this may also re-send something deleted remotely
            logger.debug(f"Keeping local-only {kind or 'entity'} {entity.id}")
            merged[entity.id] = entity
        elif not _remote_is_newer(entity, other):
            merged[entity.id] = entity

    return list(merged.values())


def merge_profile(local: Profile, remote: Profile) -> Tuple[Profile, bool]:
    """
    Pick the profile with more lifetime completions (ties keep local),
    then union the achievements of both sides.

    Returns (profile, local_won).
    """
    local_won = local.total_completed >= remote.total_completed
    winner = local if local_won else remote
    achievements = merge_achievements(local.achievements, remote.achievements)
    profile = winner.model_copy(update={
        "achievements": achievements,
        "achievement_points": sum(points_for(a.id) for a in achievements),
    })
    return profile, local_won


def merge_records(local: Dict[str, float], remote: Dict[str, float]) -> Dict[str, float]:
    merged = dict(remote)
    for key, value in local.items():
        merged[key] = max(value, merged.get(key, value))
    return merged


def merge_snapshots(domain: Domain, local: Snapshot, remote: Snapshot) -> Snapshot:
    """Field-level merge of two snapshots of the same domain."""
    profile, local_won = merge_profile(local.profile, remote.profile)
    update: Dict[str, Any] = {
        "profile": profile,
        "daily_stats": dict(local.daily_stats if local_won else remote.daily_stats),
    }
    for kind in local.ENTITY_COLLECTIONS:
        update[kind] = merge_collection(local.collection(kind), remote.collection(kind), kind)
    if isinstance(local, FitnessSnapshot) and isinstance(remote, FitnessSnapshot):
        update["records"] = merge_records(local.records, remote.records)

    merged = local.model_copy(update=update)
    logger.info(
        f"Merged {Domain(domain).value} snapshot "
        f"(profile from {'local' if local_won else 'remote'})"
    )
    return merged


# ============================================
# SYNC ENGINE
# ============================================

class SyncEngine:
    """
    Owns every network side effect of the client.

    Commands never call the network directly; they return effects which
    ``dispatch`` turns into debounced pushes, immediate pushes, pulls and
    award reports.
    """

    def __init__(self, store: LocalStore, remote: RemoteClient, config: Optional[SyncConfig] = None):
        self.store = store
        self.remote = remote
        self.config = config or get_sync_config()
        self.online = True
        self.running = False
        self._debounce: Dict[Domain, asyncio.Task] = {}
        self._retry: Dict[Domain, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._poll_task: Optional[asyncio.Task] = None

    # ============================================
    # PUSH
    # ============================================

    async def push(self, domain: Domain) -> bool:
        """
        Send the current snapshot.

        ``pending_sync`` is only cleared when no mutation happened while the
        request was in flight; otherwise another debounced push is queued.
        """
        domain = Domain(domain)
        if not self.online:
            self.store.set_sync_status(domain, SyncStatus.ERROR, "offline")
            logger.info(f"Offline; {domain.value} push deferred")
            return False

        snapshot = self.store.snapshot(domain)
        revision = self.store.revision(domain)
        self.store.set_sync_status(domain, SyncStatus.SYNCING)

        try:
            server_ts = await self.remote.push_snapshot(domain, snapshot.model_dump(mode="json"))
        except SyncTransportError as e:
            logger.warning(f"Push of {domain.value} failed: {e}")
            self.store.set_sync_status(domain, SyncStatus.ERROR, str(e))
            self._schedule_retry(domain)
            return False

        clean = self.store.mark_synced(domain, server_ts, revision)
        if clean:
            logger.info(f"Pushed {domain.value} snapshot (server time {server_ts.isoformat()})")
        else:
            logger.info(f"{domain.value} changed during push; queueing another")
            self.schedule_push(domain)
        return True

    def schedule_push(self, domain: Domain) -> None:
        """Debounced push: restarts the quiet period on every call."""
        domain = Domain(domain)
        existing = self._debounce.pop(domain, None)
        if existing is not None and not existing.done():
            existing.cancel()
        task = self._spawn(self._debounced_push(domain))
        if task is not None:
            self._debounce[domain] = task

    def push_now(self, domain: Domain) -> None:
        """Immediate fire-and-forget push; supersedes a pending debounced one."""
        domain = Domain(domain)
        existing = self._debounce.pop(domain, None)
        if existing is not None and not existing.done():
            existing.cancel()
        self._spawn(self.push(domain))

    async def _debounced_push(self, domain: Domain) -> None:
        await asyncio.sleep(self.config.debounce_ms / 1000)
        if self._debounce.get(domain) is asyncio.current_task():
            del self._debounce[domain]
        await self.push(domain)

    def retry_delay(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (0-based)."""
        return min(self.config.retry_base_seconds * (2 ** attempt), self.config.retry_max_seconds)

    def _schedule_retry(self, domain: Domain) -> None:
        state = self.store.sync_state(domain)
        if not self.online or not state.pending_sync:
            return
        if state.retry_count >= self.config.max_retries:
            logger.warning(f"Giving up on {domain.value} push after {state.retry_count} retries until reconnect")
            return

        delay = self.retry_delay(state.retry_count)
        self.store.set_retry_count(domain, state.retry_count + 1)
        logger.info(f"Retrying {domain.value} push in {delay:.0f}s (attempt {state.retry_count + 1})")

        existing = self._retry.pop(domain, None)
        if existing is not None and not existing.done() and existing is not asyncio.current_task():
            existing.cancel()
        task = self._spawn(self._retry_after(domain, delay))
        if task is not None:
            self._retry[domain] = task

    async def _retry_after(self, domain: Domain, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._retry.get(domain) is asyncio.current_task():
            del self._retry[domain]
        if self.store.sync_state(domain).pending_sync:
            await self.push(domain)

    # ============================================
    # PULL
    # ============================================

    async def pull(self, domain: Domain, force_refresh: bool = False) -> PullOutcome:
        """
        Fetch the server copy and reconcile.

        | remote empty                   | no-op (pending local state is pushed) |
        | never synced, or force_refresh | remote replaces local                 |
        | remote newer, clean            | remote replaces local                 |
        | remote newer, dirty            | merge, then push immediately          |
        | remote not newer               | no-op                                 |
        """
        domain = Domain(domain)
        if not self.online:
            return PullOutcome.OFFLINE

        self.store.set_sync_status(domain, SyncStatus.SYNCING)
        try:
            envelope = await self.remote.fetch_snapshot(domain)
        except SyncTransportError as e:
            logger.warning(f"Pull of {domain.value} failed: {e}")
            self.store.set_sync_status(domain, SyncStatus.ERROR, str(e))
            return PullOutcome.FAILED

        # Re-read: local edits may have landed while the request was in flight
        state = self.store.sync_state(domain)

        if envelope is None:
            self.store.set_sync_status(domain, SyncStatus.IDLE)
            if state.pending_sync:
                await self.push(domain)
            return PullOutcome.NO_REMOTE

        remote_snapshot = parse_snapshot(domain, envelope.data)

        if force_refresh or state.last_synced_at is None:
            self.store.replace_snapshot(domain, remote_snapshot, dirty=False)
            self.store.mark_pulled(domain, envelope.updated_at)
            logger.info(f"Loaded {domain.value} from server ({'forced' if force_refresh else 'first sync'})")
            return PullOutcome.REPLACED

        if envelope.updated_at > state.last_synced_at:
            if not state.pending_sync:
                self.store.replace_snapshot(domain, remote_snapshot, dirty=False)
                self.store.mark_pulled(domain, envelope.updated_at)
                logger.info(f"Server {domain.value} is newer; local copy replaced")
                return PullOutcome.REPLACED

            merged = merge_snapshots(domain, self.store.snapshot(domain), remote_snapshot)
            self.store.replace_snapshot(domain, merged, dirty=True)
            self.store.mark_pulled(domain, envelope.updated_at)
            await self.push(domain)
            return PullOutcome.MERGED

        self.store.set_sync_status(domain, SyncStatus.IDLE)
        return PullOutcome.UNCHANGED

    async def sync(self, domain: Domain, force_refresh: bool = False) -> PullOutcome:
        """Pull, then push whatever is still pending."""
        outcome = await self.pull(domain, force_refresh=force_refresh)
        if outcome in (PullOutcome.UNCHANGED, PullOutcome.REPLACED) and self.store.sync_state(domain).pending_sync:
            await self.push(domain)
        return outcome

    async def sync_all(self, force_refresh: bool = False) -> Dict[Domain, PullOutcome]:
        return {domain: await self.sync(domain, force_refresh) for domain in Domain}

    # ============================================
    # AWARDS
    # ============================================

    async def report_award(self, effect: AwardEffect) -> List[str]:
        """
        Post a completion to the award service and fold back any achievement
        ids the server knows about. Failures are logged, never raised.
        """
        award = XPAwardRequest(
            domain=effect.domain,
            action=effect.action,
            xp_amount=effect.xp_amount,
            unit_id=effect.unit_id,
            metadata=effect.metadata,
        )
        try:
            response = await self.remote.award_xp(award)
        except SyncTransportError as e:
            logger.warning(f"Award report for {effect.action} failed: {e}")
            return []

        profile = self.store.profile(effect.domain)
        new_ids = [code for code in response.achievements if code not in profile.achievement_ids()]
        if new_ids:
            self.store.put_profile(effect.domain, unlock(profile, new_ids, utcnow()))
            self.schedule_push(effect.domain)
        return new_ids

    # ============================================
    # EFFECTS
    # ============================================

    def dispatch(self, effects: Iterable[Any]) -> None:
        """Execute the side effects returned by a command."""
        for effect in effects:
            if isinstance(effect, PushEffect):
                if effect.mode == PushMode.IMMEDIATE:
                    self.push_now(effect.domain)
                else:
                    self.schedule_push(effect.domain)
            elif isinstance(effect, PullEffect):
                self._spawn(self.sync(effect.domain, force_refresh=effect.force_refresh))
            elif isinstance(effect, AwardEffect):
                self._spawn(self.report_award(effect))
            else:
                logger.warning(f"Unknown effect ignored: {effect!r}")

    def _spawn(self, coro: Coroutine) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running event loop; effect left for the next sync")
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every scheduled push, retry and report to finish."""
        while True:
            pending = [t for t in self._tasks if not t.done() and t is not asyncio.current_task()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ============================================
    # CONNECTIVITY & LIFECYCLE
    # ============================================

    def set_online(self, online: bool) -> None:
        """Connectivity change; coming back online retries every dirty domain."""
        was_online = self.online
        self.online = online
        if online and not was_online:
            logger.info("Back online; retrying pending pushes")
            for domain in Domain:
                if self.store.sync_state(domain).pending_sync:
                    self.store.set_retry_count(domain, 0)
                    self.push_now(domain)
        elif not online and was_online:
            logger.info("Went offline; pushes deferred")

    def flush_on_unload(self) -> List[Domain]:
        """Beacon every dirty snapshot without waiting for a response."""
        flushed = []
        for domain in Domain:
            task = self._debounce.pop(domain, None)
            if task is not None and not task.done():
                task.cancel()
            if self.store.sync_state(domain).pending_sync:
                self.remote.send_beacon(domain, self.store.snapshot(domain).model_dump(mode="json"))
                flushed.append(domain)
        if flushed:
            logger.info(f"Unload beacon sent for: {', '.join(d.value for d in flushed)}")
        return flushed

    async def start(self):
        """Start the background poll loop."""
        if self.running:
            return

        self.running = True
        self._poll_task = asyncio.create_task(self._run_loop())
        logger.info(f"SyncEngine started with {self.config.poll_interval_seconds}s poll interval")

    async def stop(self):
        """Stop polling and cancel scheduled work."""
        self.running = False
        tasks = [t for t in [self._poll_task, *self._tasks] if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._debounce.clear()
        self._retry.clear()
        logger.info("SyncEngine stopped")

    async def _run_loop(self):
        """Pull every domain on an interval."""
        while self.running:
            if self.online:
                for domain in Domain:
                    try:
                        await self.sync(domain)
                    except Exception:
                        logger.exception(f"Background sync of {domain.value} failed")
            await asyncio.sleep(self.config.poll_interval_seconds)
