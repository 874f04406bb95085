"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubemirror.models.config import (
    APIConfig,
    KubeMirrorConfig,
    KubernetesConfig,
    LabelWatchConfig,
    LogConfig,
    NodeMirrorConfig,
    PodMirrorConfig,
)
from kubemirror.observability.logging import LOG_FORMATS


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEMIRROR_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    if value.lower() not in LOG_FORMATS:
        raise ValueError(f"Invalid log format: {value}. Must be one of {LOG_FORMATS}")
    return value.lower()


def load_config() -> KubeMirrorConfig:
    """Load configuration from KUBEMIRROR_* environment variables."""
    retries = _env_int("INITIAL_LIST_RETRIES", 3, min_val=1, max_val=10)
    watch_timeout = _env_int("WATCH_TIMEOUT_SECONDS", 300, min_val=30, max_val=3600)
    return KubeMirrorConfig(
        kubernetes=KubernetesConfig(
            kubeconfig=_env("KUBECONFIG", ""),
        ),
        pods=PodMirrorConfig(
            namespace=_env("POD_NAMESPACE", "default"),
            resync_seconds=_env_int("POD_RESYNC_SECONDS", 60, min_val=1, max_val=3600),
            initial_list_retries=retries,
            watch_timeout_seconds=watch_timeout,
        ),
        nodes=NodeMirrorConfig(
            resync_seconds=_env_int("NODE_RESYNC_SECONDS", 10, min_val=1, max_val=3600),
            initial_list_retries=retries,
            watch_timeout_seconds=watch_timeout,
        ),
        label_watch=LabelWatchConfig(
            label_key=_env("LABEL_KEY", "marwin"),
            signal_removal=_env_bool("LABEL_SIGNAL_REMOVAL", True),
            webhook_url=_env("LABEL_WEBHOOK_URL", ""),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
