"""FastAPI application factory for kubemirror.

Usage::

    from kubemirror.api.app import create_app

    app = create_app(mirrors={"Pod": pod_mirror, "Node": node_mirror})

Every non-2xx response produced by the framework itself (unknown route,
wrong method, unhandled exception) is rendered with the
same ``{"error", "detail"}`` envelope the route handlers use.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from kubemirror.api.routes import router
from kubemirror.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_HTTP_ERROR_CODES = {
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def _envelope(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error, detail=detail).model_dump())


def create_app(mirrors: dict[str, Any], config: Any = None) -> FastAPI:
    """Create and configure the kubemirror FastAPI application.

    Args:
        mirrors: Running ResourceMirror instances keyed by kind ("Pod", "Node").
                 The dict is copied; mirrors added later are not served.
        config:  KubeMirrorConfig, kept on app.state for handlers that need it.
    """
    from kubemirror import __version__

    app = FastAPI(
        title="kubemirror",
        summary="In-memory view of Kubernetes pods and nodes",
        version=__version__,
    )

    app.state.mirrors = dict(mirrors)
    app.state.config = config

    app.include_router(router)

    @app.middleware("http")
    async def log_requests(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        _log.debug(
            "request served",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        error = _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
        return _envelope(exc.status_code, error, str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions; the body never carries a traceback."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return _envelope(500, "INTERNAL_ERROR", "An unexpected error occurred.")

    return app
