"""Route handlers for the kubemirror REST API.

Handlers only read mirror contents; mirrors are looked up on
``request.app.state.mirrors`` by kind.
"""

from __future__ import annotations

from dataclasses import asdict

import structlog
from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from kubemirror.api.schemas import (
    ErrorResponse,
    MirrorStatusModel,
    NodeDetailResponse,
    NodeKeysResponse,
    PingResponse,
    PodDetailResponse,
    PodKeysResponse,
    StatusResponse,
)
from kubemirror.collector.mirror import ResourceMirror
from kubemirror.models.resources import make_key

_log = structlog.get_logger(component="api.routes")

router = APIRouter()


def _mirror(request: Request, kind: str) -> ResourceMirror | None:
    mirrors: dict[str, ResourceMirror] = request.app.state.mirrors
    return mirrors.get(kind)


def _unavailable(kind: str) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content=ErrorResponse(error="MIRROR_UNAVAILABLE", detail=f"No {kind} mirror is running.").model_dump(),
    )


def _not_found(field: str, key: str) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={field: None, "error": "NOT_FOUND", "detail": f"{key} is not in the cache."},
    )


@router.get("/ping", response_model=PingResponse)
async def ping() -> PingResponse:
    return PingResponse()


@router.get("/pod", response_model=PodKeysResponse)
async def list_pods(request: Request) -> PodKeysResponse | JSONResponse:
    mirror = _mirror(request, "Pod")
    if mirror is None:
        return _unavailable("Pod")
    keys = mirror.list_keys()
    _log.info("found pod key list", count=len(keys))
    return PodKeysResponse(podKeys=keys)


@router.get("/pod/{namespace}/{pod_key}", response_model=PodDetailResponse)
async def get_pod(namespace: str, pod_key: str, request: Request) -> PodDetailResponse | JSONResponse:
    mirror = _mirror(request, "Pod")
    if mirror is None:
        return _unavailable("Pod")
    key = make_key(namespace, pod_key)
    item = mirror.get_by_key(key)
    if item is None:
        return _not_found("podDetail", key)
    _log.debug("found pod in cache", key=key)
    return PodDetailResponse(podDetail=item.obj)


@router.get("/node", response_model=NodeKeysResponse)
async def list_nodes(request: Request) -> NodeKeysResponse | JSONResponse:
    mirror = _mirror(request, "Node")
    if mirror is None:
        return _unavailable("Node")
    return NodeKeysResponse(nodeKeys=mirror.list_keys())


@router.get("/node/{name}", response_model=NodeDetailResponse)
async def get_node(name: str, request: Request) -> NodeDetailResponse | JSONResponse:
    mirror = _mirror(request, "Node")
    if mirror is None:
        return _unavailable("Node")
    item = mirror.get_by_key(name)
    if item is None:
        return _not_found("nodeDetail", name)
    return NodeDetailResponse(nodeDetail=item.obj)


@router.get("/status", response_model=StatusResponse)
async def status(request: Request) -> JSONResponse:
    mirrors: dict[str, ResourceMirror] = request.app.state.mirrors
    statuses = [MirrorStatusModel(**asdict(mirror.status())) for mirror in mirrors.values()]
    ready = bool(statuses) and all(s.synced and not s.stopped for s in statuses)
    body = StatusResponse(ready=ready, mirrors=statuses)
    return JSONResponse(status_code=200 if ready else 503, content=body.model_dump(mode="json"))


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
