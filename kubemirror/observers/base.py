"""Observer interface and ordered, isolated dispatch.

ResourceObserver -- base class every observer extends; all callbacks default
                    to no-ops so implementations override only what they need.
FuncObserver     -- observer assembled from plain callables.
ObserverRegistry -- ordered registry that fans a change event out to every
                    observer, one at a time, in registration order.

Dispatch is synchronous with respect to the mirror: the mirror does not apply
the next event until every observer has returned for the current one. A slow
observer therefore throttles its whole mirror; there is no per-observer queue.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterator
from typing import Any

import structlog

from kubemirror.models.events import Added, ChangeEvent, Deleted, Updated
from kubemirror.models.resources import ResourceItem
from kubemirror.observability.metrics import observer_errors_total

_log = structlog.get_logger(component="observers")


class ResourceObserver:
    """Receives normalised change events from a mirror.

    Any callback may be a plain method or a coroutine method.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    def on_add(self, item: ResourceItem) -> Awaitable[None] | None:
        return None

    def on_update(self, old: ResourceItem, new: ResourceItem) -> Awaitable[None] | None:
        return None

    def on_delete(self, item: ResourceItem) -> Awaitable[None] | None:
        return None

    def on_synced(self) -> Awaitable[None] | None:
        return None


class FuncObserver(ResourceObserver):
    """Observer built from individual callables; missing ones are no-ops."""

    def __init__(
        self,
        on_add: Callable[[ResourceItem], Any] | None = None,
        on_update: Callable[[ResourceItem, ResourceItem], Any] | None = None,
        on_delete: Callable[[ResourceItem], Any] | None = None,
        on_synced: Callable[[], Any] | None = None,
        name: str = "FuncObserver",
    ) -> None:
        self._on_add = on_add
        self._on_update = on_update
        self._on_delete = on_delete
        self._on_synced = on_synced
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def on_add(self, item: ResourceItem) -> Awaitable[None] | None:
        return self._on_add(item) if self._on_add else None

    def on_update(self, old: ResourceItem, new: ResourceItem) -> Awaitable[None] | None:
        return self._on_update(old, new) if self._on_update else None

    def on_delete(self, item: ResourceItem) -> Awaitable[None] | None:
        return self._on_delete(item) if self._on_delete else None

    def on_synced(self) -> Awaitable[None] | None:
        return self._on_synced() if self._on_synced else None


class ObserverRegistry:
    """Ordered set of observers for one resource kind."""

    def __init__(self, kind: str = "") -> None:
        self.kind = kind
        self._observers: list[ResourceObserver] = []

    def __len__(self) -> int:
        return len(self._observers)

    def __iter__(self) -> Iterator[ResourceObserver]:
        return iter(list(self._observers))

    def register(self, observer: ResourceObserver) -> None:
        """Append *observer*; registering the same instance twice is a no-op."""
        if any(existing is observer for existing in self._observers):
            return
        self._observers.append(observer)

    def unregister(self, observer: ResourceObserver) -> None:
        self._observers = [existing for existing in self._observers if existing is not observer]

    async def dispatch(self, event: ChangeEvent) -> None:
        """Deliver *event* to every observer in registration order."""
        for observer in list(self._observers):
            if isinstance(event, Added):
                await self._call(observer, observer.on_add, event.item)
            elif isinstance(event, Updated):
                await self._call(observer, observer.on_update, event.old, event.new)
            elif isinstance(event, Deleted):
                await self._call(observer, observer.on_delete, event.item)
            else:
                raise TypeError(f"unknown change event: {event!r}")

    async def dispatch_synced(self) -> None:
        """Tell every observer that a full snapshot has been delivered."""
        for observer in list(self._observers):
            await self._call(observer, observer.on_synced)

    async def _call(self, observer: ResourceObserver, fn: Callable[..., Any], *args: Any) -> None:
        """Invoke one callback, awaiting it if needed. Never raises."""
        try:
            result = fn(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # noqa: BLE001
            observer_errors_total.labels(kind=self.kind, observer=observer.name).inc()
            _log.error(
                "observer_callback_failed",
                kind=self.kind,
                observer=observer.name,
                callback=getattr(fn, "__name__", repr(fn)),
                error=str(exc),
                exc_info=True,
            )
