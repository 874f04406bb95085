"""Pydantic response models for the kubemirror REST API.

Field names follow the JSON wire format, so list and detail payloads use
camelCase keys (podKeys, podDetail, nodeKeys, nodeDetail).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Error envelope for every non-2xx response."""

    error: str
    detail: str


class PingResponse(BaseModel):
    message: str = "pong"


class PodKeysResponse(BaseModel):
    podKeys: list[str]


class PodDetailResponse(BaseModel):
    podDetail: dict[str, Any] | None


class NodeKeysResponse(BaseModel):
    nodeKeys: list[str]


class NodeDetailResponse(BaseModel):
    nodeDetail: dict[str, Any] | None


class MirrorStatusModel(BaseModel):
    kind: str
    synced: bool
    items: int
    resource_version: str
    last_resync_at: datetime | None
    stopped: bool


class StatusResponse(BaseModel):
    """Readiness of every mirror. ``ready`` is true when all have synced."""

    ready: bool
    mirrors: list[MirrorStatusModel]
