"""Application bootstrap for latticeflow.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config -> logging -> K8s client -> controllers -> REST

Shutdown is graceful: components are stopped in reverse startup order, and
each stop error is caught and logged on its own so one failure does not keep
the rest from shutting down.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Mapping
from typing import TYPE_CHECKING

from latticeflow.config import load_config, parse_duration
from latticeflow.controllers import GatewayReconciler, PolicyReconciler, Reconciler, RouteReconciler
from latticeflow.deploy import RemoteBackend
from latticeflow.k8s.client import ApiKubeClient, KubeClient
from latticeflow.models.config import LatticeFlowConfig
from latticeflow.observability.logging import get_logger, setup_logging
from latticeflow.policy import PolicyKind
from latticeflow.routes import RouteKind
from latticeflow.runtime import Controller, ControllerManager

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15

_ROUTE_CONTROLLERS = {str(kind).lower(): kind for kind in RouteKind}
_POLICY_CONTROLLERS = {str(kind).lower(): kind for kind in PolicyKind}


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


def build_reconciler(
    name: str,
    client: KubeClient,
    config: LatticeFlowConfig,
    backend: RemoteBackend | None = None,
) -> Reconciler:
    """Create the reconciler registered under controller *name*."""
    kwargs = backend.as_kwargs() if backend is not None else {}
    if name == "gateway":
        return GatewayReconciler(client, config, **kwargs)
    if name in _ROUTE_CONTROLLERS:
        return RouteReconciler(_ROUTE_CONTROLLERS[name], client, config, **kwargs)
    if name in _POLICY_CONTROLLERS:
        return PolicyReconciler(_POLICY_CONTROLLERS[name], client, config, **kwargs)
    raise ValueError(f"unknown controller: {name!r}")


def build_manager(
    client: KubeClient,
    config: LatticeFlowConfig,
    backends: Mapping[str, RemoteBackend] | None = None,
) -> ControllerManager:
    """One Controller per enabled kind; kinds without a backend are status-only."""
    backends = backends or {}
    manager = ControllerManager()
    rc = config.reconcile
    for name in rc.enabled_controllers:
        reconciler = build_reconciler(name, client, config, backends.get(name))
        manager.add(
            Controller(
                name,
                reconciler.reconcile,
                reconciler.list_keys,
                workers=rc.max_concurrent_reconciles,
                timeout_seconds=rc.timeout_seconds,
                backoff_base_seconds=rc.backoff_base_seconds,
                backoff_max_seconds=rc.backoff_max_seconds,
                resync_seconds=float(parse_duration(rc.resync_period)),
            )
        )
    return manager


class LatticeFlowApp:
    """Application root. Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started, or already stopped,
    is safe.
    """

    def __init__(self, backends: Mapping[str, RemoteBackend] | None = None) -> None:
        self.config: LatticeFlowConfig | None = None
        self._backends = dict(backends or {})

        self._k8s_client: ApiKubeClient | None = None
        self._manager: ControllerManager | None = None
        self._rest_server: object | None = None

        self._background_tasks: list[asyncio.Task[None]] = []

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
        self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("latticeflow_starting", version=_latticeflow_version())

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Controllers ----------------------------------------------
        await self._start_controllers()

        # --- 5. REST API ------------------------------------------------
        await self._start_rest()

        self._running = True
        self._log.info("latticeflow_started", port=self.config.api.port)

    async def _start_k8s_client(self) -> None:
        """Initialise the kubernetes-asyncio client from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting_k8s_client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]

            try:
                k8s_config.load_incluster_config()
                self._log.info("k8s_client_configured", source="incluster")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s_client_configured", source="kubeconfig")

            self._k8s_client = ApiKubeClient()
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_controllers(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._k8s_client is not None
        self._log.debug("starting_controllers")
        try:
            self._manager = build_manager(self._k8s_client, self.config, self._backends)
            await self._manager.start()
            self._log.info(
                "controllers_started",
                controllers=[c.name for c in self._manager.controllers],
                remote_backends=sorted(self._backends),
            )
        except Exception as exc:
            raise _ComponentError("controllers", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn health and metrics server."""
        assert self._log is not None
        assert self.config is not None
        assert self._manager is not None
        self._log.debug("starting_rest_api")
        try:
            import uvicorn

            from latticeflow.api import create_app

            fastapi_app = create_app(manager=self._manager, config=self.config)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest_api_started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("latticeflow_shutting_down")
        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]
        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._rest_server = None

        await self._stop_controllers()
        await self._stop_k8s_client()

        log.info("latticeflow_stopped")

    async def _stop_controllers(self) -> None:
        """Stop every controller loop, waiting at most the grace period."""
        if self._manager is None:
            return
        log = self._log or get_logger("app")
        try:
            await asyncio.wait_for(self._manager.stop(), timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("controllers_stop_timed_out", timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("controllers_stop_failed", error=str(exc))
        self._manager = None

    async def _stop_k8s_client(self) -> None:
        if self._k8s_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._k8s_client.close()
        except Exception as exc:
            log.debug("k8s_client_close_failed", error=str(exc))
        self._k8s_client = None


def _latticeflow_version() -> str:
    from latticeflow import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = LatticeFlowApp()
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app.running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical("fatal_startup_error", component=exc.component, error=str(exc.cause))
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()
