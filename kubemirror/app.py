"""Application bootstrap for kubemirror.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → pod mirror → node mirror → REST

Shutdown is graceful: the REST server is asked to exit, then every mirror is
stopped (its watch loop and resync timer cancelled and awaited), then the
API client is closed. Each component's stop error is caught and logged
independently so that one failure does not prevent the rest from stopping.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from kubernetes_asyncio import client

from kubemirror.collector.mirror import MirrorStartError, ResourceMirror
from kubemirror.config import load_config
from kubemirror.k8s.client import load_client_config
from kubemirror.k8s.source import KubernetesSource
from kubemirror.models.config import KubeMirrorConfig
from kubemirror.observability.logging import get_logger, setup_logging
from kubemirror.observers.change_log import ChangeLogObserver
from kubemirror.observers.label_watcher import LabelWatcher, SignalSink, WebhookSink, log_sink

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeMirrorApp:
    """Application root. Owns the API client, every mirror and the REST server.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.
    """

    def __init__(self, config: KubeMirrorConfig | None = None) -> None:
        self.config = config
        self._core_v1: Any | None = None
        self.mirrors: dict[str, ResourceMirror] = {}
        self._rest_server: Any | None = None

        # Background tasks that must be cancelled on shutdown
        self._background_tasks: list[asyncio.Task[Any]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, self.config.log.format)
        self._log = get_logger("app")
        self._log.info("kubemirror starting", version=_kubemirror_version())

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Mirrors --------------------------------------------------
        await self._start_pod_mirror()
        await self._start_node_mirror()

        # --- 5. REST API -------------------------------------------------
        await self._start_rest()

        self._running = True
        self._log.info("kubemirror started", port=self.config.api.port)

    async def _start_k8s_client(self) -> None:
        """Load credentials from a kubeconfig file or the in-cluster service account."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting k8s client")
        try:
            await load_client_config(self.config.kubernetes.kubeconfig)
            self._core_v1 = client.CoreV1Api()
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_pod_mirror(self) -> None:
        """List pods, then keep watching them. Fatal if the initial list fails."""
        assert self._log is not None
        assert self.config is not None
        pods = self.config.pods
        source = KubernetesSource(
            self._core_v1,
            kind="Pod",
            namespace=pods.namespace,
            watch_timeout_seconds=pods.watch_timeout_seconds,
        )
        mirror = ResourceMirror(
            source,
            resync_interval=pods.resync_seconds,
            initial_list_retries=pods.initial_list_retries,
        )
        mirror.register(ChangeLogObserver("Pod"))
        await self._start_mirror("pod_mirror", mirror)
        self._log.info("pod mirror started", namespace=pods.namespace or "<all>", items=len(mirror.store))

    async def _start_node_mirror(self) -> None:
        """List and watch nodes with the label watcher attached."""
        assert self._log is not None
        assert self.config is not None
        nodes = self.config.nodes
        label_cfg = self.config.label_watch

        sinks: list[SignalSink] = [log_sink]
        if label_cfg.webhook_url:
            sinks.append(WebhookSink(url=label_cfg.webhook_url))

        source = KubernetesSource(
            self._core_v1,
            kind="Node",
            watch_timeout_seconds=nodes.watch_timeout_seconds,
        )
        mirror = ResourceMirror(
            source,
            resync_interval=nodes.resync_seconds,
            initial_list_retries=nodes.initial_list_retries,
        )
        mirror.register(
            LabelWatcher(
                label_key=label_cfg.label_key,
                sinks=sinks,
                signal_removal=label_cfg.signal_removal,
            )
        )
        await self._start_mirror("node_mirror", mirror)
        self._log.info("node mirror started", items=len(mirror.store), label_key=label_cfg.label_key)

    async def _start_mirror(self, component: str, mirror: ResourceMirror) -> None:
        try:
            await mirror.start()
        except MirrorStartError as exc:
            raise _ComponentError(component, exc) from exc
        self.mirrors[mirror.kind] = mirror

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn

            from kubemirror.api import build_app

            fastapi_app = build_app(mirrors=self.mirrors, config=self.config)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            # Never started; nothing to do
            return

        log = self._log or get_logger("app")
        log.info("kubemirror shutting down")

        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True

        if self._background_tasks:
            _, pending = await asyncio.wait(self._background_tasks, timeout=_SHUTDOWN_GRACE_SECONDS)
            for task in pending:
                task.cancel()
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._rest_server = None

        for kind, mirror in reversed(list(self.mirrors.items())):
            await self._stop_component(f"{kind.lower()}_mirror", mirror)
        self.mirrors.clear()

        await self._stop_k8s_client()
        log.info("kubemirror stopped")

    async def _stop_component(self, name: str, component: ResourceMirror) -> None:
        log = self._log or get_logger("app")
        try:
            await asyncio.wait_for(component.stop(), timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._core_v1 is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._core_v1.api_client.close()
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._core_v1 = None


def _kubemirror_version() -> str:
    from kubemirror import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config: KubeMirrorConfig | None = None) -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeMirrorApp(config)
    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_requested.set)

    try:
        await app.start()
        await stop_requested.wait()
    except _ComponentError as exc:
        # A mandatory component failed; log and exit non-zero
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()
