"""Thread-safe keyed store backing a resource mirror.

The mirror is the only writer. Readers (REST handlers, CLI, tests) may call
from any thread; every read returns a copy taken under the lock, so a reader
never sees a partially applied mutation.
"""

from __future__ import annotations

import threading

from kubemirror.models.resources import ResourceItem


class ResourceStore:
    """In-memory ``key -> ResourceItem`` map guarded by a re-entrant lock."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._items: dict[str, ResourceItem] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def get(self, key: str) -> ResourceItem | None:
        """Return the item under *key*, or None on a miss."""
        with self._lock:
            return self._items.get(key)

    def put(self, item: ResourceItem) -> ResourceItem | None:
        """Insert or replace *item*; return the previous value, if any."""
        with self._lock:
            previous = self._items.get(item.key)
            self._items[item.key] = item
            return previous

    def pop(self, key: str) -> ResourceItem | None:
        """Remove *key*; return the removed value, or None if absent."""
        with self._lock:
            return self._items.pop(key, None)

    def list_keys(self) -> list[str]:
        """Sorted snapshot of all keys."""
        with self._lock:
            return sorted(self._items)

    def list_items(self) -> list[ResourceItem]:
        """Snapshot of all items, ordered by key."""
        with self._lock:
            return [self._items[key] for key in sorted(self._items)]

    def snapshot(self) -> dict[str, ResourceItem]:
        """Shallow copy of the whole map."""
        with self._lock:
            return dict(self._items)

