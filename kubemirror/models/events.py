"""Watch events received from the API server and the change events mirrors emit."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from kubemirror.models.resources import ResourceItem


class WatchEventType(StrEnum):
    """Event types on a Kubernetes watch stream."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


@dataclass(frozen=True)
class WatchEvent:
    """One raw event from a watch stream.

    For a DELETED event whose final object state is unknown (a tombstone)
    ``raw`` is None and only ``key`` identifies the deleted object.
    """

    type: WatchEventType | str
    raw: Any = None
    key: str = ""

    @property
    def is_tombstone(self) -> bool:
        return self.type == WatchEventType.DELETED and self.raw is None


@dataclass(frozen=True)
class Added:
    """An item appeared in the mirror."""

    item: ResourceItem


@dataclass(frozen=True)
class Updated:
    """An item changed. ``old`` is exactly what the cache held before."""

    old: ResourceItem
    new: ResourceItem


@dataclass(frozen=True)
class Deleted:
    """An item left the mirror.

    ``tombstone`` is True when the delete notification carried no body and
    ``item`` was recovered from the cache.
    """

    item: ResourceItem
    tombstone: bool = False


ChangeEvent = Added | Updated | Deleted


def event_name(event: ChangeEvent) -> str:
    """Return a short label for *event*, used in logs and metrics."""
    if isinstance(event, Added):
        return "added"
    if isinstance(event, Updated):
        return "updated"
    if isinstance(event, Deleted):
        return "deleted"
    raise TypeError(f"unknown change event: {event!r}")
