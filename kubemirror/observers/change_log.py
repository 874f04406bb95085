"""Observer that writes every change to the structured log."""

from __future__ import annotations

import structlog

from kubemirror.models.resources import ResourceItem
from kubemirror.observers.base import ResourceObserver


class ChangeLogObserver(ResourceObserver):
    """Logs adds, updates and deletes. Full bodies are logged at debug level only."""

    def __init__(self, kind: str) -> None:
        self._kind = kind
        self._log = structlog.get_logger(component="observers.change_log", kind=kind)

    def on_add(self, item: ResourceItem) -> None:
        self._log.info("resource added", key=item.key, resource_version=item.resource_version)

    def on_update(self, old: ResourceItem, new: ResourceItem) -> None:
        self._log.info(
            "resource changed",
            key=new.key,
            old_resource_version=old.resource_version,
            new_resource_version=new.resource_version,
        )
        self._log.debug("resource changed detail", key=new.key, old=old.obj, new=new.obj)

    def on_delete(self, item: ResourceItem) -> None:
        self._log.info("resource deleted", key=item.key, resource_version=item.resource_version)

    def on_synced(self) -> None:
        self._log.info("resource snapshot synced")
