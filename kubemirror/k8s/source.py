"""Remote resource sources: the list+watch interface a mirror consumes.

ResourceSource    -- abstract list/watch contract for one resource kind.
KubernetesSource  -- implementation on top of kubernetes-asyncio CoreV1Api.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from typing import Any

import structlog
from kubernetes_asyncio import watch

from kubemirror.k8s.client import list_items, read_json
from kubemirror.models.events import WatchEvent
from kubemirror.models.resources import ResourceList

_log = structlog.get_logger(component="k8s.source")

# kind -> (namespaced list function, cluster-wide list function)
_LIST_FUNCS: dict[str, tuple[str | None, str]] = {
    "Pod": ("list_namespaced_pod", "list_pod_for_all_namespaces"),
    "Node": (None, "list_node"),
    "Service": ("list_namespaced_service", "list_service_for_all_namespaces"),
    "ConfigMap": ("list_namespaced_config_map", "list_config_map_for_all_namespaces"),
    "Namespace": (None, "list_namespace"),
}


class ResourceSource(ABC):
    """List and watch one kind of resource on a remote API."""

    kind: str

    @property
    def namespaced(self) -> bool:
        """True when objects of this kind live in a namespace."""
        return True

    @abstractmethod
    async def list(self) -> ResourceList:
        """Fetch the full current collection and its resourceVersion."""

    @abstractmethod
    def watch(self, resource_version: str) -> AsyncIterator[WatchEvent]:
        """Stream changes that happened after *resource_version*.

        The iterator ends when the server closes the stream (watch timeout).
        Transport failures propagate as exceptions.
        """


class KubernetesSource(ResourceSource):
    """ResourceSource backed by a kubernetes-asyncio ``CoreV1Api``.

    List items and watch objects are both kept as the raw JSON the API server
    sends, so an unchanged object compares equal whichever path delivered it.

    Args:
        api:                   CoreV1Api instance.
        kind:                  Resource kind, one of the supported core kinds.
        namespace:             Namespace to watch; empty watches all namespaces.
                               Ignored for cluster-scoped kinds.
        watch_timeout_seconds: Server-side timeout after which a watch closes
                               cleanly and is reopened.
    """

    def __init__(
        self,
        api: Any,
        kind: str,
        namespace: str = "",
        watch_timeout_seconds: int = 300,
    ) -> None:
        if kind not in _LIST_FUNCS:
            raise ValueError(f"unsupported kind: {kind}")
        self._api = api
        self.kind = kind
        self._namespace = namespace
        self._watch_timeout = watch_timeout_seconds

    @property
    def namespaced(self) -> bool:
        return _LIST_FUNCS[self.kind][0] is not None

    def _list_call(self) -> tuple[Callable[..., Any], tuple[str, ...]]:
        namespaced_fn, cluster_fn = _LIST_FUNCS[self.kind]
        if namespaced_fn is not None and self._namespace:
            return getattr(self._api, namespaced_fn), (self._namespace,)
        return getattr(self._api, cluster_fn), ()

    async def list(self) -> ResourceList:
        func, args = self._list_call()
        body = await read_json(await func(*args, _preload_content=False, watch=False))
        metadata = body.get("metadata") or {}
        rv = metadata.get("resourceVersion") or ""
        if not rv:
            _log.warning("list_no_rv", kind=self.kind)
        return ResourceList(items=list_items(body, self.kind), resource_version=str(rv))

    async def watch(self, resource_version: str) -> AsyncIterator[WatchEvent]:
        func, args = self._list_call()
        kwargs: dict[str, Any] = {
            "timeout_seconds": self._watch_timeout,
            "allow_watch_bookmarks": True,
        }
        if resource_version:
            kwargs["resource_version"] = resource_version

        w = watch.Watch()
        try:
            async for event in w.stream(func, *args, **kwargs):
                yield WatchEvent(type=str(event.get("type", "")), raw=event.get("raw_object"))
        finally:
            await w.close()
