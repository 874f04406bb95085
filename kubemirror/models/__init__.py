"""Core data structures for kubemirror."""

from kubemirror.models.config import KubeMirrorConfig
from kubemirror.models.events import (
    Added,
    ChangeEvent,
    Deleted,
    Updated,
    WatchEvent,
    WatchEventType,
)
from kubemirror.models.resources import (
    MalformedObjectError,
    ResourceItem,
    ResourceList,
    make_key,
    split_key,
)

__all__ = [
    "Added",
    "ChangeEvent",
    "Deleted",
    "KubeMirrorConfig",
    "MalformedObjectError",
    "ResourceItem",
    "ResourceList",
    "Updated",
    "WatchEvent",
    "WatchEventType",
    "make_key",
    "split_key",
]
