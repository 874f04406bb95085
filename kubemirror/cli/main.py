"""kubemirror command-line interface.

Commands:
    serve -- run the mirrors and the REST API until interrupted.
    pods  -- query pods directly from the API server and print their keys.
    nodes -- query nodes directly from the API server and print their names.
    pod   -- print one pod, read directly from the API server, as JSON.

Options left unset fall back to the KUBEMIRROR_* environment variables.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
from typing import Any

import click

from kubemirror import __version__
from kubemirror.config import load_config
from kubemirror.k8s.client import ClusterClient, K8sClientError, load_client_config
from kubemirror.models.resources import ResourceItem
from kubemirror.observability.logging import LOG_FORMATS


def _parse_selector(values: tuple[str, ...]) -> dict[str, str]:
    selector: dict[str, str] = {}
    for value in values:
        key, sep, label_value = value.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {value!r}", param_hint="--selector")
        selector[key] = label_value
    return selector


@click.group()
@click.version_option(__version__, prog_name="kubemirror")
def cli() -> None:
    """Mirror Kubernetes pods and nodes in memory and serve them over HTTP."""


@cli.command()
@click.option("--kubeconfig", default=None, help="Kubeconfig path, relative to the working directory.")
@click.option("--port", type=int, default=None, help="REST API port.")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default=None,
    help="Log level.",
)
@click.option("--log-format", type=click.Choice(list(LOG_FORMATS)), default=None, help="Log line format.")
def serve(kubeconfig: str | None, port: int | None, log_level: str | None, log_format: str | None) -> None:
    """Run the pod and node mirrors and the REST API."""
    from kubemirror.app import main

    config = load_config()
    if kubeconfig is not None:
        config.kubernetes = dataclasses.replace(config.kubernetes, kubeconfig=kubeconfig)
    if port is not None:
        config.api = dataclasses.replace(config.api, port=port)
    if log_level is not None:
        config.log = dataclasses.replace(config.log, level=log_level)
    if log_format is not None:
        config.log = dataclasses.replace(config.log, format=log_format)
    asyncio.run(main(config))


async def _query_pods(kubeconfig: str, namespace: str, selector: dict[str, str]) -> list[str]:
    await load_client_config(kubeconfig)
    cluster = ClusterClient()
    try:
        if selector:
            pods = await cluster.list_pods_by_selector(namespace, selector)
        else:
            pods = await cluster.list_pods(namespace)
    finally:
        await cluster.close()
    return sorted(ResourceItem.from_raw("Pod", pod).key for pod in pods)


async def _query_nodes(kubeconfig: str) -> list[str]:
    await load_client_config(kubeconfig)
    cluster = ClusterClient()
    try:
        nodes = await cluster.list_nodes()
    finally:
        await cluster.close()
    return sorted(ResourceItem.from_raw("Node", node).key for node in nodes)


@cli.command()
@click.option("--kubeconfig", default=None, help="Kubeconfig path, relative to the working directory.")
@click.option("--namespace", "-n", default="default", show_default=True, help="Namespace; empty for all.")
@click.option("--selector", "-l", multiple=True, help="Label selector key=value (repeatable).")
def pods(kubeconfig: str | None, namespace: str, selector: tuple[str, ...]) -> None:
    """Print the keys of pods currently known to the API server."""
    labels = _parse_selector(selector)
    config_path = kubeconfig if kubeconfig is not None else load_config().kubernetes.kubeconfig
    try:
        keys = asyncio.run(_query_pods(config_path, namespace, labels))
    except K8sClientError as exc:
        raise click.ClickException(str(exc)) from exc
    for key in keys:
        click.echo(key)


@cli.command()
@click.option("--kubeconfig", default=None, help="Kubeconfig path, relative to the working directory.")
def nodes(kubeconfig: str | None) -> None:
    """Print the names of nodes currently known to the API server."""
    config_path = kubeconfig if kubeconfig is not None else load_config().kubernetes.kubeconfig
    try:
        names = asyncio.run(_query_nodes(config_path))
    except K8sClientError as exc:
        raise click.ClickException(str(exc)) from exc
    for name in names:
        click.echo(name)


async def _query_pod(kubeconfig: str, namespace: str, name: str) -> dict[str, Any] | None:
    await load_client_config(kubeconfig)
    cluster = ClusterClient()
    try:
        return await cluster.get_pod(namespace, name)
    finally:
        await cluster.close()


@cli.command()
@click.argument("namespace")
@click.argument("name")
@click.option("--kubeconfig", default=None, help="Kubeconfig path, relative to the working directory.")
def pod(namespace: str, name: str, kubeconfig: str | None) -> None:
    """Print one pod as JSON, read directly from the API server."""
    config_path = kubeconfig if kubeconfig is not None else load_config().kubernetes.kubeconfig
    try:
        body = asyncio.run(_query_pod(config_path, namespace, name))
    except K8sClientError as exc:
        raise click.ClickException(str(exc)) from exc
    if body is None:
        raise click.ClickException(f"pod {namespace}/{name} not found")
    click.echo(json.dumps(body, indent=2, sort_keys=True))
