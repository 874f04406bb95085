"""Label watcher: turns raw node changes into label-level signals.

The watcher tracks a single label key. It ignores every change that does not
touch that label and emits a LabelSignal when the label appears, changes
value, or disappears:

    absent  -> present   CREATED
    present -> present   UPDATED (only when the value differs)
    present -> absent    REMOVED (when ``signal_removal`` is enabled)

Signals are delivered to sinks in order. ``log_sink`` writes a log line;
``WebhookSink`` POSTs the signal as JSON.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

import structlog

from kubemirror.models.resources import ResourceItem
from kubemirror.observers.base import ResourceObserver

_log = structlog.get_logger(component="observers.label_watcher")


class LabelChange(StrEnum):
    """What happened to the watched label."""

    CREATED = "created"
    UPDATED = "updated"
    REMOVED = "removed"


@dataclass(frozen=True)
class LabelSignal:
    """A change of the watched label on one object."""

    change: LabelChange
    kind: str
    key: str
    label_key: str
    old_value: str | None
    new_value: str | None
    detected_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def to_dict(self) -> dict[str, object]:
        return {
            "change": self.change.value,
            "kind": self.kind,
            "key": self.key,
            "label_key": self.label_key,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "detected_at": self.detected_at.isoformat(),
        }


SignalSink = Callable[[LabelSignal], Awaitable[object] | object]


def log_sink(signal: LabelSignal) -> None:
    """Default sink: announce the signal in the log."""
    _log.info(
        "send message",
        change=signal.change.value,
        kind=signal.kind,
        key=signal.key,
        label_key=signal.label_key,
        old_value=signal.old_value,
        new_value=signal.new_value,
    )


class WebhookSink:
    """POSTs each signal as a JSON body to a configured URL.

    Args:
        url:     Endpoint URL.
        headers: Optional extra headers (e.g. Authorization).
        timeout: HTTP request timeout in seconds. Defaults to 5.
    """

    def __init__(self, url: str, headers: dict[str, str] | None = None, timeout: float = 5.0) -> None:
        if not url:
            raise ValueError("Webhook url must not be empty")
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout

    async def __call__(self, signal: LabelSignal) -> bool:
        """Deliver *signal*. Returns True on a 2xx response, False otherwise."""
        import httpx

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._url,
                    json=signal.to_dict(),
                    headers={"Content-Type": "application/json", **self._headers},
                )
                if response.is_success:
                    return True
                _log.warning(
                    "label_webhook_non_2xx_response",
                    status_code=response.status_code,
                    body=response.text[:200],
                    key=signal.key,
                )
                return False
        except httpx.TimeoutException:
            _log.warning("label_webhook_timeout", url=self._url, key=signal.key)
            return False
        except httpx.HTTPError as exc:
            _log.warning("label_webhook_http_error", error=str(exc), key=signal.key)
            return False


class LabelWatcher(ResourceObserver):
    """Observer that signals changes of one label.

    Args:
        label_key:      Label to track.
        sinks:          Signal consumers, called in order. Defaults to ``[log_sink]``.
        signal_removal: Emit REMOVED when the label disappears or a labelled
                        object is deleted. When False only appearance and
                        value changes are signalled.
    """

    def __init__(
        self,
        label_key: str = "marwin",
        sinks: Sequence[SignalSink] | None = None,
        signal_removal: bool = True,
    ) -> None:
        self.label_key = label_key
        self._sinks: list[SignalSink] = list(sinks) if sinks is not None else [log_sink]
        self._signal_removal = signal_removal

    async def on_add(self, item: ResourceItem) -> None:
        labels = item.labels
        _log.debug("on add", key=item.key, labels=labels)
        if self.label_key in labels:
            await self._emit(LabelChange.CREATED, item, None, labels[self.label_key])

    async def on_update(self, old: ResourceItem, new: ResourceItem) -> None:
        old_labels, new_labels = old.labels, new.labels
        _log.debug("on update", key=new.key, old_labels=old_labels, new_labels=new_labels)
        old_present = self.label_key in old_labels
        new_present = self.label_key in new_labels
        old_value = old_labels.get(self.label_key)
        new_value = new_labels.get(self.label_key)

        if not old_present and new_present:
            await self._emit(LabelChange.CREATED, new, None, new_value)
        elif old_present and new_present and old_value != new_value:
            await self._emit(LabelChange.UPDATED, new, old_value, new_value)
        elif old_present and not new_present and self._signal_removal:
            await self._emit(LabelChange.REMOVED, new, old_value, None)

    async def on_delete(self, item: ResourceItem) -> None:
        labels = item.labels
        if self._signal_removal and self.label_key in labels:
            await self._emit(LabelChange.REMOVED, item, labels[self.label_key], None)

    async def _emit(
        self,
        change: LabelChange,
        item: ResourceItem,
        old_value: str | None,
        new_value: str | None,
    ) -> None:
        signal = LabelSignal(
            change=change,
            kind=item.kind,
            key=item.key,
            label_key=self.label_key,
            old_value=old_value,
            new_value=new_value,
        )
        for sink in self._sinks:
            try:
                result = sink(signal)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                _log.error("label_sink_failed", key=item.key, change=change.value, error=str(exc))
