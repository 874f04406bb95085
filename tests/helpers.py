"""Shared test doubles: an in-memory list/watch source and a recording observer."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncIterator, Callable
from typing import Any

from kubemirror.k8s.source import ResourceSource
from kubemirror.models.events import WatchEvent, WatchEventType
from kubemirror.models.resources import ResourceItem, ResourceList, make_key
from kubemirror.observers.base import ResourceObserver


def raw_pod(
    name: str,
    namespace: str = "default",
    rv: str = "1",
    labels: dict[str, str] | None = None,
    phase: str = "Running",
) -> dict[str, Any]:
    """Return a minimal raw Pod body as the API server would send it."""
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "resourceVersion": rv,
            "labels": labels or {},
        },
        "spec": {"containers": [{"name": "app", "image": "nginx:latest"}]},
        "status": {"phase": phase},
    }


def raw_node(name: str, rv: str = "1", labels: dict[str, str] | None = None) -> dict[str, Any]:
    """Return a minimal raw Node body."""
    return {
        "apiVersion": "v1",
        "kind": "Node",
        "metadata": {"name": name, "resourceVersion": rv, "labels": labels or {}},
        "status": {"conditions": [{"type": "Ready", "status": "True"}]},
    }


def event(event_type: WatchEventType, raw: Any = None, key: str = "") -> WatchEvent:
    return WatchEvent(type=event_type, raw=raw, key=key)


class FakeSource(ResourceSource):
    """ResourceSource whose remote state and watch stream are driven by the test.

    ``items`` is the authoritative remote collection returned by list().
    Events pushed with push() are yielded by the current watch stream;
    push(None) ends the stream cleanly and push(exc) makes it raise.
    """

    def __init__(self, kind: str = "Pod", namespaced: bool = True) -> None:
        self.kind = kind
        self._namespaced = namespaced
        self.items: dict[str, dict[str, Any]] = {}
        self.resource_version = "1"
        self.list_calls = 0
        self.list_errors: list[Exception] = []
        self.watch_calls: list[str] = []
        self._queue: asyncio.Queue[WatchEvent | Exception | None] = asyncio.Queue()

    @property
    def namespaced(self) -> bool:
        return self._namespaced

    def set_items(self, raws: list[dict[str, Any]], resource_version: str = "1") -> None:
        self.items = {}
        for raw in raws:
            metadata = raw["metadata"]
            self.items[make_key(metadata.get("namespace", ""), metadata["name"])] = raw
        self.resource_version = resource_version

    async def list(self) -> ResourceList:
        self.list_calls += 1
        if self.list_errors:
            raise self.list_errors.pop(0)
        return ResourceList(
            items=[copy.deepcopy(raw) for raw in self.items.values()],
            resource_version=self.resource_version,
        )

    async def watch(self, resource_version: str) -> AsyncIterator[WatchEvent]:
        self.watch_calls.append(resource_version)
        while True:
            item = await self._queue.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def push(self, item: WatchEvent | Exception | None) -> None:
        self._queue.put_nowait(item)


class Recorder(ResourceObserver):
    """Observer that records every callback in order."""

    def __init__(self, label: str = "recorder") -> None:
        self.label = label
        self.calls: list[tuple[str, ...]] = []
        self.added: list[ResourceItem] = []
        self.updated: list[tuple[ResourceItem, ResourceItem]] = []
        self.deleted: list[ResourceItem] = []

    @property
    def name(self) -> str:
        return self.label

    def on_add(self, item: ResourceItem) -> None:
        self.calls.append(("add", item.key))
        self.added.append(item)

    def on_update(self, old: ResourceItem, new: ResourceItem) -> None:
        self.calls.append(("update", new.key))
        self.updated.append((old, new))

    def on_delete(self, item: ResourceItem) -> None:
        self.calls.append(("delete", item.key))
        self.deleted.append(item)

    def on_synced(self) -> None:
        self.calls.append(("synced",))

    def clear(self) -> None:
        self.calls.clear()
        self.added.clear()
        self.updated.clear()
        self.deleted.clear()

    def change_calls(self) -> list[tuple[str, ...]]:
        """Calls other than on_synced."""
        return [call for call in self.calls if call[0] != "synced"]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until *predicate* holds or *timeout* elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


class ReplicaObserver(ResourceObserver):
    """Rebuilds the mirror's contents from callbacks alone.

    Any callback that contradicts the replica so far (an add for a key it
    already holds, an update whose ``old`` differs from what it holds, a
    delete for a key it never saw) is recorded in ``violations``.
    """

    def __init__(self) -> None:
        self.state: dict[str, ResourceItem] = {}
        self.violations: list[str] = []
        self.dispatches = 0

    def on_add(self, item: ResourceItem) -> None:
        self.dispatches += 1
        if item.key in self.state:
            self.violations.append(f"add for present key {item.key}")
        self.state[item.key] = item

    def on_update(self, old: ResourceItem, new: ResourceItem) -> None:
        self.dispatches += 1
        if self.state.get(new.key) != old:
            self.violations.append(f"update with stale old value for {new.key}")
        if old == new:
            self.violations.append(f"update without change for {new.key}")
        self.state[new.key] = new

    def on_delete(self, item: ResourceItem) -> None:
        self.dispatches += 1
        if self.state.pop(item.key, None) is None:
            self.violations.append(f"delete for absent key {item.key}")
