"""ResourceMirror: list+watch synchronisation of one resource kind.

A mirror keeps a ResourceStore consistent with the remote collection and
republishes every change as a normalised Added/Updated/Deleted event to its
ObserverRegistry.

Lifecycle:
    start()  -- initial list (with retries), Added for every item, on_synced,
                then launches the watch loop and the resync timer as tasks.
    run()    -- the watch loop; reconnects with exponential back-off and
                forces a resync after every stream failure.
    resync() -- full re-list reconciled against the cache, then on_synced.
    stop()   -- cancels and awaits both tasks. A stopped mirror cannot be
                restarted.

Event application and resync hold the same asyncio.Lock, so the store has a
single writer and observers never see two events of this kind concurrently.

Resource versions are opaque strings. When both sides of a comparison are
decimal integers (as etcd-backed API servers produce) they are used to drop
stale replays; otherwise every event is applied.
"""

from __future__ import annotations

import asyncio
import random
from contextlib import aclosing
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from kubemirror.cache.store import ResourceStore
from kubemirror.k8s.source import ResourceSource
from kubemirror.models.events import (
    Added,
    ChangeEvent,
    Deleted,
    Updated,
    WatchEvent,
    WatchEventType,
    event_name,
)
from kubemirror.models.resources import MalformedObjectError, ResourceItem, ResourceList
from kubemirror.observability.metrics import (
    cached_items,
    dispatched_total,
    dropped_events_total,
    resyncs_total,
    watch_events_total,
    watch_reconnects_total,
)
from kubemirror.observers.base import ObserverRegistry, ResourceObserver

_HTTP_GONE = 410

_APPLIED_TYPES = frozenset({WatchEventType.ADDED, WatchEventType.MODIFIED, WatchEventType.DELETED})


class MirrorError(Exception):
    """Base class for mirror errors."""


class MirrorStartError(MirrorError):
    """The initial list failed on every attempt; the mirror cannot serve."""


class MirrorStoppedError(MirrorError):
    """Operation on a mirror that has been stopped."""


class WatchStatusError(MirrorError):
    """The watch stream delivered an ERROR event carrying a Status object."""

    def __init__(self, status: int, message: str = "") -> None:
        super().__init__(f"watch error {status}: {message}")
        self.status = status


@dataclass(frozen=True)
class MirrorStatus:
    """Point-in-time summary of a mirror, served by the REST API."""

    kind: str
    synced: bool
    items: int
    resource_version: str
    last_resync_at: datetime | None
    stopped: bool


def _rv_int(rv: str) -> int | None:
    return int(rv) if rv.isascii() and rv.isdigit() else None


def _is_older(candidate: str, reference: str) -> bool:
    """True when both versions are numeric and *candidate* < *reference*."""
    a, b = _rv_int(candidate), _rv_int(reference)
    return a is not None and b is not None and a < b


def _is_not_newer(candidate: str, reference: str) -> bool:
    """True when both versions are numeric and *candidate* <= *reference*."""
    a, b = _rv_int(candidate), _rv_int(reference)
    return a is not None and b is not None and a <= b


def _is_gone(exc: BaseException) -> bool:
    return getattr(exc, "status", None) == _HTTP_GONE


class ResourceMirror:
    """Local mirror of one resource kind.

    Args:
        source:               List/watch source for the kind.
        resync_interval:      Seconds between periodic resyncs.
        initial_list_retries: Attempts for the startup list before giving up.
        registry:             Observer registry; a fresh one is created if None.
        backoff_base:         First back-off delay in seconds.
        backoff_max:          Back-off ceiling in seconds.
    """

    def __init__(
        self,
        source: ResourceSource,
        resync_interval: float = 60.0,
        initial_list_retries: int = 3,
        registry: ObserverRegistry | None = None,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
    ) -> None:
        self.kind = source.kind
        self._source = source
        self._resync_interval = resync_interval
        self._initial_list_retries = max(1, initial_list_retries)
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max

        self.store = ResourceStore(self.kind)
        self.observers = registry if registry is not None else ObserverRegistry(self.kind)

        self._lock = asyncio.Lock()
        self._resource_version = ""
        self._list_resource_version = ""
        self._consecutive_failures = 0
        self._synced = False
        self._started = False
        self._stopped = False
        self._last_resync_at: datetime | None = None
        self._tasks: list[asyncio.Task[None]] = []

        self._log = structlog.get_logger(component="collector.mirror", kind=self.kind)

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def list_keys(self) -> list[str]:
        return self.store.list_keys()

    def get_by_key(self, key: str) -> ResourceItem | None:
        """Point lookup; None is a valid miss, not an error."""
        return self.store.get(key)

    def list_items(self) -> list[ResourceItem]:
        return self.store.list_items()

    @property
    def has_synced(self) -> bool:
        return self._synced

    @property
    def resource_version(self) -> str:
        return self._resource_version

    def status(self) -> MirrorStatus:
        return MirrorStatus(
            kind=self.kind,
            synced=self._synced,
            items=len(self.store),
            resource_version=self._resource_version,
            last_resync_at=self._last_resync_at,
            stopped=self._stopped,
        )

    def register(self, observer: ResourceObserver) -> None:
        """Register an observer. Observers added after start() miss earlier events."""
        self.observers.register(observer)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Populate the cache from an initial list and launch background tasks.

        Raises:
            MirrorStartError:   if the initial list fails on every attempt.
            MirrorStoppedError: if the mirror has already been stopped.
        """
        if self._stopped:
            raise MirrorStoppedError(f"{self.kind} mirror is stopped")
        if self._started:
            raise MirrorError(f"{self.kind} mirror already started")
        self._started = True

        snapshot = await self._initial_list()
        async with self._lock:
            await self._reconcile(snapshot)
        self._log.info("initial sync complete", items=len(self.store), resource_version=self._resource_version)

        self._tasks = [
            asyncio.create_task(self.run(), name=f"mirror-{self.kind.lower()}-watch"),
            asyncio.create_task(self._resync_loop(), name=f"mirror-{self.kind.lower()}-resync"),
        ]

    async def stop(self) -> None:
        """Cancel the watch loop and resync timer and wait for them to exit."""
        if self._stopped:
            return
        self._stopped = True
        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._log.info("mirror stopped")

    async def _initial_list(self) -> ResourceList:
        last_exc: Exception | None = None
        for attempt in range(1, self._initial_list_retries + 1):
            try:
                return await self._source.list()
            except Exception as exc:
                last_exc = exc
                self._log.warning(
                    "initial_list_failed",
                    attempt=attempt,
                    max_attempts=self._initial_list_retries,
                    error=str(exc),
                )
                if attempt < self._initial_list_retries:
                    await asyncio.sleep(self._backoff_delay(attempt))
        raise MirrorStartError(
            f"initial list of {self.kind} failed after {self._initial_list_retries} attempts: {last_exc}"
        ) from last_exc

    # ------------------------------------------------------------------
    # Watch loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Consume the watch stream until stopped."""
        while not self._stopped:
            try:
                await self._watch_once()
            except asyncio.CancelledError:
                return
            except Exception as exc:
                if self._stopped:
                    return
                await self._recover(exc)

    async def _watch_once(self) -> None:
        """Open one watch stream from the current resourceVersion and drain it."""
        delivered = 0
        async with aclosing(self._source.watch(self._resource_version)) as stream:
            async for event in stream:
                if self._stopped:
                    return
                watch_events_total.labels(kind=self.kind, type=str(event.type)).inc()
                await self.handle_event(event)
                delivered += 1
                self._consecutive_failures = 0

        if delivered:
            # Server-side watch timeout: reopen from the last seen version.
            self._consecutive_failures = 0
            watch_reconnects_total.labels(kind=self.kind, reason="timeout").inc()
            self._log.debug("watch stream closed by server", resource_version=self._resource_version)
            return

        # A stream that ends before delivering anything backs off before reopening.
        self._consecutive_failures += 1
        watch_reconnects_total.labels(kind=self.kind, reason="empty").inc()
        self._log.debug(
            "watch stream closed without events",
            resource_version=self._resource_version,
            consecutive_failures=self._consecutive_failures,
        )
        await asyncio.sleep(self._backoff_delay(self._consecutive_failures))

    async def _recover(self, exc: Exception) -> None:
        """Back off after a stream failure, then resync before reconnecting."""
        self._consecutive_failures += 1
        gone = _is_gone(exc)
        reason = "gone" if gone else "stream_error"
        watch_reconnects_total.labels(kind=self.kind, reason=reason).inc()
        self._log.warning(
            "watch_stream_failed",
            reason=reason,
            error=str(exc),
            consecutive_failures=self._consecutive_failures,
        )
        # An expired resourceVersion is healed by relisting straight away.
        if not gone or self._consecutive_failures > 1:
            await asyncio.sleep(self._backoff_delay(self._consecutive_failures))
        if self._stopped:
            return
        try:
            await self.resync(reason=reason)
        except Exception as resync_exc:
            self._log.warning("resync_failed", reason=reason, error=str(resync_exc))

    def _backoff_delay(self, attempt: int) -> float:
        delay = min(self._backoff_max, self._backoff_base * (2 ** max(attempt - 1, 0)))
        return delay + random.uniform(0, delay * 0.1)

    async def handle_event(self, event: WatchEvent) -> None:
        """Apply one raw watch event to the cache and dispatch the result.

        Malformed payloads are logged and dropped. ERROR events raise
        WatchStatusError so the watch loop can recover.
        """
        event_type = event.type
        if event_type == WatchEventType.BOOKMARK:
            self._apply_bookmark(event.raw)
            return
        if event_type == WatchEventType.ERROR:
            raw = event.raw if isinstance(event.raw, dict) else {}
            raise WatchStatusError(int(raw.get("code") or 0), str(raw.get("message", "")))
        if event_type not in _APPLIED_TYPES:
            self._drop("unknown_type", event_type=str(event_type))
            self._log.error("unexpected event type", event_type=str(event_type))
            return

        async with self._lock:
            if event.is_tombstone:
                await self._apply_tombstone(event.key)
                return
            try:
                item = ResourceItem.from_raw(self.kind, event.raw)
            except MalformedObjectError as exc:
                self._drop("malformed")
                self._log.error("malformed watch event dropped", event_type=str(event_type), error=str(exc))
                return

            if _is_not_newer(item.resource_version, self._list_resource_version):
                self._drop("stale", key=item.key, resource_version=item.resource_version)
                return

            if event_type == WatchEventType.DELETED:
                await self._apply_delete(item)
            else:
                await self._apply_upsert(item)
            if item.resource_version and not _is_older(item.resource_version, self._resource_version):
                self._resource_version = item.resource_version

    def _apply_bookmark(self, raw: Any) -> None:
        metadata = raw.get("metadata") if isinstance(raw, dict) else None
        rv = metadata.get("resourceVersion", "") if isinstance(metadata, dict) else ""
        if rv and not _is_older(str(rv), self._resource_version):
            self._resource_version = str(rv)

    async def _apply_upsert(self, item: ResourceItem) -> None:
        old = self.store.get(item.key)
        if old is None:
            self.store.put(item)
            await self._emit(Added(item))
            return
        if _is_older(item.resource_version, old.resource_version):
            self._drop("stale", key=item.key, resource_version=item.resource_version)
            return
        if old == item:
            self._drop("duplicate", key=item.key, resource_version=item.resource_version)
            return
        self.store.put(item)
        await self._emit(Updated(old, item))

    async def _apply_delete(self, item: ResourceItem) -> None:
        old = self.store.get(item.key)
        if old is None:
            self._drop("unknown_key", key=item.key)
            return
        if _is_older(item.resource_version, old.resource_version):
            self._drop("stale", key=item.key, resource_version=item.resource_version)
            return
        self.store.pop(item.key)
        await self._emit(Deleted(item))

    async def _apply_tombstone(self, key: str) -> None:
        last_known = self.store.pop(key) if key else None
        if last_known is None:
            dropped_events_total.labels(kind=self.kind, reason="tombstone_unrecoverable").inc()
            self._log.warning("tombstone for unknown object dropped", key=key)
            return
        await self._emit(Deleted(last_known, tombstone=True))

    def _drop(self, reason: str, **context: str) -> None:
        dropped_events_total.labels(kind=self.kind, reason=reason).inc()
        self._log.debug("watch event dropped", reason=reason, **context)

    async def _emit(self, event: ChangeEvent) -> None:
        dispatched_total.labels(kind=self.kind, event=event_name(event)).inc()
        cached_items.labels(kind=self.kind).set(len(self.store))
        await self.observers.dispatch(event)

    # ------------------------------------------------------------------
    # Resync
    # ------------------------------------------------------------------

    async def resync(self, reason: str = "manual") -> None:
        """Re-list and reconcile the cache against the fresh snapshot.

        Raises whatever the source raises when the list fails; the cache is
        left untouched in that case.
        """
        if self._stopped:
            raise MirrorStoppedError(f"{self.kind} mirror is stopped")
        async with self._lock:
            snapshot = await self._source.list()
            await self._reconcile(snapshot)
        resyncs_total.labels(kind=self.kind, reason=reason).inc()
        self._log.info("resync complete", reason=reason, items=len(self.store))

    async def _resync_loop(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self._resync_interval)
            try:
                await self.resync(reason="periodic")
            except MirrorStoppedError:
                return
            except Exception as exc:
                self._log.warning("resync_failed", reason="periodic", error=str(exc))

    async def _reconcile(self, snapshot: ResourceList) -> None:
        """Bring the store in line with *snapshot*. Caller holds the lock."""
        fresh: dict[str, ResourceItem] = {}
        for raw in snapshot.items:
            try:
                item = ResourceItem.from_raw(self.kind, raw)
            except MalformedObjectError as exc:
                self._drop("malformed")
                self._log.error("malformed list item dropped", error=str(exc))
                continue
            fresh[item.key] = item

        current = self.store.snapshot()
        for key, item in fresh.items():
            old = current.get(key)
            if old is None:
                self.store.put(item)
                await self._emit(Added(item))
            elif old != item:
                self.store.put(item)
                await self._emit(Updated(old, item))

        for key in sorted(current.keys() - fresh.keys()):
            gone = self.store.pop(key)
            if gone is not None:
                await self._emit(Deleted(gone))

        self._list_resource_version = snapshot.resource_version
        self._resource_version = snapshot.resource_version
        self._last_resync_at = datetime.now(tz=UTC)
        self._synced = True
        cached_items.labels(kind=self.kind).set(len(self.store))
        await self.observers.dispatch_synced()
