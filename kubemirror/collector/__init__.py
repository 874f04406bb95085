"""Collector package for kubemirror.

Submodules
----------
mirror -- ResourceMirror: initial list, watch loop with reconnect/back-off,
          periodic resync and reconciliation, ordered observer dispatch.
"""

from kubemirror.collector.mirror import (
    MirrorError,
    MirrorStartError,
    MirrorStatus,
    MirrorStoppedError,
    ResourceMirror,
    WatchStatusError,
)

__all__ = [
    "MirrorError",
    "MirrorStartError",
    "MirrorStatus",
    "MirrorStoppedError",
    "ResourceMirror",
    "WatchStatusError",
]
