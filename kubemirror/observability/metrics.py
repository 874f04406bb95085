"""Prometheus metrics for kubemirror.

All collectors live in the default registry and are exposed by the REST API
at ``/metrics``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

watch_events_total = Counter(
    "kubemirror_watch_events_total",
    "Raw watch events received from the API server",
    ["kind", "type"],
)

dispatched_total = Counter(
    "kubemirror_dispatched_total",
    "Change events dispatched to observers",
    ["kind", "event"],
)

dropped_events_total = Counter(
    "kubemirror_dropped_events_total",
    "Watch events dropped without changing the cache",
    ["kind", "reason"],
)

resyncs_total = Counter(
    "kubemirror_resyncs_total",
    "Full re-lists reconciled against the cache",
    ["kind", "reason"],
)

watch_reconnects_total = Counter(
    "kubemirror_watch_reconnects_total",
    "Watch stream reconnects",
    ["kind", "reason"],
)

observer_errors_total = Counter(
    "kubemirror_observer_errors_total",
    "Exceptions raised by observer callbacks",
    ["kind", "observer"],
)

cached_items = Gauge(
    "kubemirror_cached_items",
    "Items currently held by a mirror",
    ["kind"],
)
