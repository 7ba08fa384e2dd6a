"""Human-readable Events on reconciled objects."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

import structlog

from latticeflow.k8s.client import KubeClient

_log = structlog.get_logger(component="k8s.events")

REASON_RECONCILE = "Reconcile"
REASON_DEPLOY_SUCCEED = "DeploySucceed"
REASON_FAILED_ADD_FINALIZER = "FailedAddFinalizer"
REASON_FAILED_BUILD_MODEL = "FailedBuildModel"
REASON_FAILED_DEPLOY_MODEL = "FailedDeployModel"
REASON_RETRY_RECONCILE = "Retry-Reconcile"
REASON_FAILED_CLEANUP = "FailedCleanup"


class EventType(StrEnum):
    NORMAL = "Normal"
    WARNING = "Warning"


class EventRecorder:
    """Writes core/v1 Events for an object.

    Events are observational only: a failed write is logged and dropped so it
    never changes a reconcile's outcome.
    """

    def __init__(self, client: KubeClient, component: str) -> None:
        self._client = client
        self._component = component

    async def event(self, obj: dict[str, Any], event_type: EventType, reason: str, message: str) -> None:
        meta = obj.get("metadata") or {}
        namespace = meta.get("namespace") or "default"
        now = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
        body = {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {
                "name": f"{meta.get('name', 'unknown')}.{uuid4().hex[:16]}",
                "namespace": namespace,
            },
            "involvedObject": {
                "apiVersion": obj.get("apiVersion", ""),
                "kind": obj.get("kind", ""),
                "name": meta.get("name", ""),
                "namespace": namespace,
                "uid": meta.get("uid", ""),
                "resourceVersion": meta.get("resourceVersion", ""),
            },
            "type": str(event_type),
            "reason": reason,
            "message": message,
            "source": {"component": self._component},
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }
        try:
            await self._client.create_event(namespace, body)
        except Exception as exc:
            _log.warning("event_write_failed", reason=reason, name=meta.get("name"), error=str(exc))
