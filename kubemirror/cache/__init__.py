"""Cache layer for kubemirror.

Submodules:
    store -- Thread-safe keyed store holding the current state of one resource kind.
"""

from kubemirror.cache.store import ResourceStore

__all__ = ["ResourceStore"]
