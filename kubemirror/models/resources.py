"""Resource item and cache key data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class MalformedObjectError(ValueError):
    """Raised when a raw payload does not have the shape of a Kubernetes object."""


def make_key(namespace: str, name: str) -> str:
    """Return the cache key for an object: ``namespace/name`` or ``name``."""
    if namespace:
        return f"{namespace}/{name}"
    return name


def split_key(key: str) -> tuple[str, str]:
    """Inverse of make_key. Cluster-scoped keys return an empty namespace."""
    namespace, sep, name = key.partition("/")
    if not sep:
        return "", key
    return namespace, name


@dataclass(frozen=True)
class ResourceItem:
    """One cached Kubernetes object.

    ``obj`` is the raw camelCase JSON body as delivered by the API server.
    Two items are equal when every field, including the body, is equal.
    """

    kind: str
    namespace: str
    name: str
    resource_version: str
    obj: dict[str, Any] = field(default_factory=dict, hash=False, repr=False)

    @property
    def key(self) -> str:
        return make_key(self.namespace, self.name)

    @property
    def labels(self) -> dict[str, str]:
        metadata = self.obj.get("metadata") or {}
        labels = metadata.get("labels") or {}
        return dict(labels) if isinstance(labels, dict) else {}

    @classmethod
    def from_raw(cls, kind: str, raw: object) -> ResourceItem:
        """Build an item from a raw object body.

        Raises:
            MalformedObjectError: if *raw* is not a mapping, lacks
                ``metadata.name``, or declares a different kind.
        """
        if not isinstance(raw, dict):
            raise MalformedObjectError(f"expected a mapping, got {type(raw).__name__}")
        metadata = raw.get("metadata")
        if not isinstance(metadata, dict):
            raise MalformedObjectError("object has no metadata")
        name = metadata.get("name")
        if not name or not isinstance(name, str):
            raise MalformedObjectError("object has no metadata.name")
        declared_kind = raw.get("kind")
        if declared_kind and declared_kind != kind:
            raise MalformedObjectError(f"expected kind {kind}, got {declared_kind}")
        return cls(
            kind=kind,
            namespace=str(metadata.get("namespace") or ""),
            name=name,
            resource_version=str(metadata.get("resourceVersion") or ""),
            obj=raw,
        )


@dataclass
class ResourceList:
    """Result of a full list call: the items plus the list's resourceVersion."""

    items: list[dict[str, Any]] = field(default_factory=list)
    resource_version: str = ""
