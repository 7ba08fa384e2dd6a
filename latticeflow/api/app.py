"""FastAPI application factory for the latticeflow health endpoints.

Usage::

    from latticeflow.api.app import create_app

    app = create_app(manager=manager, config=config)

The factory is used by both the production bootstrap (``latticeflow.app``)
and the tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from latticeflow.runtime import ControllerManager

_log = structlog.get_logger(component="api.app")


def create_app(manager: ControllerManager, config: Any = None) -> FastAPI:
    """Create the health, readiness and metrics application.

    Args:
        manager: ControllerManager whose controllers decide readiness.
        config:  LatticeFlowConfig. Used for cluster and controller metadata.
    """
    from latticeflow import __version__

    app = FastAPI(
        title="latticeflow",
        summary="Gateway API reconciler health endpoints",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )

    app.state.manager = manager
    app.state.config = config

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz(request: Request) -> JSONResponse:
        mgr: ControllerManager = request.app.state.manager
        ready = mgr.ready()
        return JSONResponse(
            status_code=200 if ready else 503,
            content={"status": "ready" if ready else "not_ready", "controllers": mgr.status()},
        )

    @app.get("/status")
    async def status(request: Request) -> dict[str, Any]:
        mgr: ControllerManager = request.app.state.manager
        cfg = request.app.state.config
        return {
            "version": __version__,
            "cluster_name": getattr(cfg, "cluster_name", ""),
            "controller_name": getattr(cfg, "controller_name", ""),
            "controllers": mgr.status(),
        }

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content={"error": "INTERNAL_ERROR", "detail": "An unexpected error occurred."},
        )

    return app
