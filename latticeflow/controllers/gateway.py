"""Gateway reconciler."""

from __future__ import annotations

from typing import Any

import structlog

from latticeflow.controllers.base import Reconciler, Validation, condition_for
from latticeflow.k8s.client import KubeClient, NotFoundError
from latticeflow.models.k8s import (
    GATEWAY,
    GATEWAY_CLASS,
    ConditionReason,
    ConditionType,
)
from latticeflow.models.objects import KubeObject
from latticeflow.routes import list_all_routes
from latticeflow.runtime.errors import RemoteNotFoundError, RequeueNeeded
from latticeflow.stack import Stack

_log = structlog.get_logger(component="controllers.gateway")

GATEWAY_FINALIZER = "gateway.k8s.aws/resources"
NO_BACKEND_MESSAGE = "no remote backend configured for gateways"


class Gateway(KubeObject):
    @property
    def gateway_class_name(self) -> str:
        return self._obj["spec"].get("gatewayClassName", "")

    def listeners(self) -> list[dict[str, Any]]:
        return list(self._obj["spec"].get("listeners") or [])


class GatewayInUseError(RequeueNeeded):
    """The gateway is still a parent of at least one route."""

    def __init__(self, gateway: Gateway, routes: list[str]) -> None:
        super().__init__(f"gateway {gateway.namespaced_name} is still referenced by {', '.join(routes)}")
        self.routes = routes


async def is_controlled_gateway(client: KubeClient, gateway: Gateway, controller_name: str) -> bool:
    """True when *gateway*'s GatewayClass names *controller_name* as its controller."""
    if not gateway.gateway_class_name:
        return False
    try:
        gw_class = await client.get(GATEWAY_CLASS, "", gateway.gateway_class_name)
    except NotFoundError:
        _log.debug("gateway_class_not_found", gateway_class=gateway.gateway_class_name)
        return False
    return (gw_class.get("spec") or {}).get("controllerName") == controller_name


class GatewayReconciler(Reconciler):
    """Reconciles Gateways of this controller's GatewayClass.

    Accepted reports that the gateway is ours; Programmed reports whether
    its remote network exists.
    """

    name = "gateway"
    object_type = GATEWAY
    finalizer = GATEWAY_FINALIZER

    def wrap(self, obj: dict[str, Any]) -> Gateway:
        return Gateway(obj)

    async def is_relevant(self, source: KubeObject) -> bool:
        assert isinstance(source, Gateway)
        return await is_controlled_gateway(self.client, source, self.config.controller_name)

    async def before_delete(self, source: KubeObject) -> None:
        referencing: list[str] = []
        for route in await list_all_routes(self.client):
            for parent in route.spec.parent_refs():
                if parent.name == source.name and (parent.namespace or route.namespace) == source.namespace:
                    referencing.append(f"{route.route_kind}/{route.namespace}/{route.name}")
                    break
        if referencing:
            raise GatewayInUseError(source, referencing)

    async def set_condition(self, source: KubeObject, cond_type: str, reason: str, message: str) -> None:
        source.set_condition(condition_for(cond_type, reason, message, source.generation))
        await self.write_status(source)

    async def report_validation(self, source: KubeObject, validation: Validation) -> None:
        await self.set_condition(
            source,
            ConditionType.ACCEPTED,
            validation.reason,
            validation.message if not validation.ok else self.config.controller_name,
        )

    async def report_rejected(self, source: KubeObject, reason: str, message: str) -> None:
        await self.set_condition(source, ConditionType.PROGRAMMED, reason, message)

    async def report_retry(self, source: KubeObject, exc: Exception) -> None:
        if isinstance(exc, RemoteNotFoundError):
            await self.set_condition(source, ConditionType.PROGRAMMED, ConditionReason.PENDING, str(exc))

    async def report_deployed(self, source: KubeObject, stack: Stack | None) -> None:
        if stack is None:
            # status-only: nothing was deployed
            await self.set_condition(source, ConditionType.PROGRAMMED, ConditionReason.PENDING, NO_BACKEND_MESSAGE)
            return
        await self.set_condition(source, ConditionType.PROGRAMMED, ConditionReason.PROGRAMMED, "")
