"""Kubernetes API client setup and one-shot queries.

Credentials come either from a kubeconfig file (path resolved relative to the
process working directory) or, when no path is given, from the in-cluster
service account.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import structlog
from kubernetes_asyncio import client, config
from kubernetes_asyncio.client.exceptions import ApiException

_log = structlog.get_logger(component="k8s.client")


class K8sClientError(Exception):
    """Raised when the Kubernetes client cannot be configured."""


def resolve_kubeconfig_path(kubeconfig: str) -> Path:
    """Resolve *kubeconfig* against the working directory.

    Raises:
        K8sClientError: if the working directory cannot be determined.
    """
    path = Path(kubeconfig).expanduser()
    if path.is_absolute():
        return path
    try:
        cwd = os.getcwd()
    except OSError as exc:
        raise K8sClientError(f"cannot resolve working directory: {exc}") from exc
    return Path(cwd) / path


async def load_client_config(kubeconfig: str = "") -> None:
    """Load credentials into the kubernetes-asyncio default configuration.

    Raises:
        K8sClientError: if neither the kubeconfig nor in-cluster config loads.
    """
    try:
        if not kubeconfig:
            # load_incluster_config() is synchronous in kubernetes-asyncio
            config.load_incluster_config()
            _log.info("using in-cluster config")
            return
        path = resolve_kubeconfig_path(kubeconfig)
        await config.load_kube_config(config_file=str(path))
        _log.info("using out-of-cluster config", kubeconfig=str(path))
    except K8sClientError:
        raise
    except Exception as exc:
        raise K8sClientError(f"failed to load Kubernetes config: {exc}") from exc


async def read_json(response: Any) -> Any:
    """Decode a response fetched with ``_preload_content=False``.

    kubernetes-asyncio skips the status check for such responses, so it is
    done here.

    Raises:
        ApiException: on a non-2xx status.
    """
    try:
        if not 200 <= response.status <= 299:
            raise ApiException(status=response.status, reason=response.reason)
        data = await response.read()
    finally:
        response.release()
    return json.loads(data)


def list_items(body: dict[str, Any], kind: str) -> list[dict[str, Any]]:
    """Return the items of a raw list body in the shape watch events use.

    The API server leaves ``kind`` and ``apiVersion`` off list items; they are
    filled in from the list itself.
    """
    api_version = body.get("apiVersion") or "v1"
    items = []
    for raw in body.get("items") or []:
        if isinstance(raw, dict):
            raw.setdefault("apiVersion", api_version)
            raw.setdefault("kind", kind)
        items.append(raw)
    return items


def selector_string(selector: dict[str, str]) -> str:
    """Render an equality label selector, e.g. ``{"app": "web"}`` -> ``app=web``."""
    return ",".join(f"{key}={value}" for key, value in sorted(selector.items()))


class ClusterClient:
    """Direct queries against the API server, bypassing any mirror.

    Results are raw camelCase dicts, the same shape mirrors cache.
    """

    def __init__(self, core_v1: Any | None = None) -> None:
        self._core_v1 = core_v1

    @property
    def core_v1(self) -> Any:
        if self._core_v1 is None:
            self._core_v1 = client.CoreV1Api()
        return self._core_v1

    async def list_nodes(self) -> list[dict[str, Any]]:
        """Return every node in the cluster."""
        body = await read_json(await self.core_v1.list_node(_preload_content=False))
        return list_items(body, "Node")

    async def list_pods(self, namespace: str = "") -> list[dict[str, Any]]:
        """Return pods in *namespace*, or in all namespaces when empty."""
        if namespace:
            response = await self.core_v1.list_namespaced_pod(namespace, _preload_content=False)
        else:
            response = await self.core_v1.list_pod_for_all_namespaces(_preload_content=False)
        return list_items(await read_json(response), "Pod")

    async def list_pods_by_selector(self, namespace: str, selector: dict[str, str]) -> list[dict[str, Any]]:
        """Return pods in *namespace* whose labels match every pair in *selector*."""
        label_selector = selector_string(selector)
        if namespace:
            response = await self.core_v1.list_namespaced_pod(
                namespace, label_selector=label_selector, _preload_content=False
            )
        else:
            response = await self.core_v1.list_pod_for_all_namespaces(
                label_selector=label_selector, _preload_content=False
            )
        return list_items(await read_json(response), "Pod")

    async def get_pod(self, namespace: str, name: str) -> dict[str, Any] | None:
        """Return one pod, or None if it does not exist."""
        try:
            return await read_json(await self.core_v1.read_namespaced_pod(name, namespace, _preload_content=False))
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise

    async def close(self) -> None:
        if self._core_v1 is not None:
            await self._core_v1.api_client.close()
