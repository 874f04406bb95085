"""REST API layer for kubemirror.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by kubemirror.app bootstrap).
"""

from kubemirror.api.app import create_app

build_app = create_app

__all__ = ["build_app", "create_app"]
