"""Observers receive normalised change events from resource mirrors.

Exports:
    ResourceObserver  -- base class with no-op callbacks.
    FuncObserver      -- observer assembled from plain callables.
    ObserverRegistry  -- ordered, isolated fan-out used by every mirror.
    ChangeLogObserver -- logs every change.
    LabelWatcher      -- signals appearance/change/removal of one label.
    LabelSignal, LabelChange, WebhookSink, log_sink -- label watcher plumbing.
"""

from kubemirror.observers.base import FuncObserver, ObserverRegistry, ResourceObserver
from kubemirror.observers.change_log import ChangeLogObserver
from kubemirror.observers.label_watcher import (
    LabelChange,
    LabelSignal,
    LabelWatcher,
    WebhookSink,
    log_sink,
)

__all__ = [
    "ChangeLogObserver",
    "FuncObserver",
    "LabelChange",
    "LabelSignal",
    "LabelWatcher",
    "ObserverRegistry",
    "ResourceObserver",
    "WebhookSink",
    "log_sink",
]
