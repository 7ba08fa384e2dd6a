"""Route reconciler, one instance per route kind."""

from __future__ import annotations

from typing import Any

import structlog

from latticeflow.controllers.base import Reconciler, Validation, condition_for
from latticeflow.controllers.gateway import Gateway, is_controlled_gateway
from latticeflow.k8s.client import KubeClient, NotFoundError
from latticeflow.models.config import LatticeFlowConfig
from latticeflow.models.k8s import (
    GATEWAY,
    SERVICE,
    SERVICE_IMPORT,
    ConditionReason,
    ConditionStatus,
    ConditionType,
    ObjectType,
)
from latticeflow.models.objects import KubeObject
from latticeflow.routes import ParentReference, Route, RouteKind, RouteParentStatus, route_type
from latticeflow.stack import Stack

_log = structlog.get_logger(component="controllers.route")

_BACKEND_TYPES: dict[str, ObjectType] = {
    SERVICE.kind: SERVICE,
    SERVICE_IMPORT.kind: SERVICE_IMPORT,
}

DUAL_STACK_MESSAGE = "Dual stack Service is not supported"


def route_finalizer(kind: RouteKind) -> str:
    return f"{str(kind).lower()}.k8s.aws/resources"


class RouteReconciler(Reconciler):
    """Reconciles one route kind attached to this controller's gateways.

    A route is ours when the gateway named by its first parentRef exists and
    belongs to our GatewayClass; other routes get no status writes at all.
    """

    def __init__(
        self,
        route_kind: RouteKind | str,
        client: KubeClient,
        config: LatticeFlowConfig,
        **kwargs: Any,
    ) -> None:
        self.route_kind = RouteKind(route_kind)
        self.route_class = route_type(self.route_kind)
        self.name = str(self.route_kind).lower()
        self.object_type = self.route_class.object_type
        self.finalizer = route_finalizer(self.route_kind)
        super().__init__(client, config, **kwargs)

    def wrap(self, obj: dict[str, Any]) -> Route:
        return self.route_class(obj)

    async def _find_gateway(self, route: Route, parent: ParentReference) -> Gateway | None:
        namespace = parent.namespace or route.namespace
        try:
            return Gateway(await self.client.get(GATEWAY, namespace, parent.name))
        except NotFoundError:
            return None

    async def is_relevant(self, source: KubeObject) -> bool:
        assert isinstance(source, Route)
        parents = source.spec.parent_refs()
        if not parents:
            return False
        gateway = await self._find_gateway(source, parents[0])
        if gateway is None:
            _log.debug("route_parent_gateway_missing", gateway=parents[0].name)
            return False
        return await is_controlled_gateway(self.client, gateway, self.config.controller_name)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate(self, source: KubeObject) -> Validation:
        assert isinstance(source, Route)
        resolved = await self._validate_backend_refs(source)
        parents = await self._validate_parent_refs(source, resolved)
        source.status.set_parents(parents)

        for parent in parents:
            for cond in parent.conditions:
                if cond["status"] != ConditionStatus.TRUE:
                    return Validation.failed(cond["reason"], cond.get("message", ""))

        if await self._has_dual_stack_backend(source):
            first = source.spec.parent_refs()[0]
            source.status.update_parent_refs(first, self.config.controller_name)
            source.status.update_route_condition(
                first,
                condition_for(
                    ConditionType.ACCEPTED,
                    ConditionReason.UNSUPPORTED_VALUE,
                    DUAL_STACK_MESSAGE,
                    source.generation,
                ),
            )
            return Validation.failed(ConditionReason.UNSUPPORTED_VALUE, DUAL_STACK_MESSAGE)
        return Validation.accepted()

    async def _validate_parent_refs(self, route: Route, resolved: dict[str, Any]) -> list[RouteParentStatus]:
        statuses: list[RouteParentStatus] = []
        for parent in route.spec.parent_refs():
            gateway = await self._find_gateway(route, parent)
            if gateway is None:
                continue
            matched = False
            for listener in gateway.listeners():
                if parent.port is not None and parent.port != listener.get("port"):
                    continue
                if parent.section_name is not None and parent.section_name != listener.get("name"):
                    continue
                matched = True
                break
            reason = ConditionReason.ACCEPTED if matched else ConditionReason.NO_MATCHING_PARENT
            statuses.append(
                RouteParentStatus(
                    parent_ref=parent,
                    controller_name=self.config.controller_name,
                    conditions=[
                        condition_for(ConditionType.ACCEPTED, reason, "", route.generation).to_dict(),
                        dict(resolved),
                    ],
                )
            )
        return statuses

    async def _validate_backend_refs(self, route: Route) -> dict[str, Any]:
        """ResolvedRefs condition for every backendRef of *route*."""
        for rule in route.spec.rules():
            for ref in rule.backend_refs():
                kind = ref.kind or SERVICE.kind
                backend_type = _BACKEND_TYPES.get(kind)
                if backend_type is None:
                    return condition_for(
                        ConditionType.RESOLVED_REFS,
                        ConditionReason.INVALID_KIND,
                        f"backendRef kind {kind} is not supported",
                        route.generation,
                    ).to_dict()
                namespace = ref.namespace or route.namespace
                try:
                    await self.client.get(backend_type, namespace, ref.name)
                except NotFoundError:
                    return condition_for(
                        ConditionType.RESOLVED_REFS,
                        ConditionReason.BACKEND_NOT_FOUND,
                        f"backend {kind} {namespace}/{ref.name} not found",
                        route.generation,
                    ).to_dict()
        return condition_for(
            ConditionType.RESOLVED_REFS, ConditionReason.RESOLVED_REFS, "", route.generation
        ).to_dict()

    async def _has_dual_stack_backend(self, route: Route) -> bool:
        for rule in route.spec.rules():
            for ref in rule.backend_refs():
                if (ref.kind or SERVICE.kind) != SERVICE.kind:
                    continue
                try:
                    svc = await self.client.get(SERVICE, ref.namespace or route.namespace, ref.name)
                except NotFoundError:
                    continue
                if len((svc.get("spec") or {}).get("ipFamilies") or []) > 1:
                    return True
        return False

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def set_condition(self, source: KubeObject, cond_type: str, reason: str, message: str) -> None:
        assert isinstance(source, Route)
        parents = source.spec.parent_refs()
        if not parents:
            return
        source.status.update_parent_refs(parents[0], self.config.controller_name)
        source.status.update_route_condition(
            parents[0], condition_for(cond_type, reason, message, source.generation)
        )
        await self.write_status(source)

    async def report_validation(self, source: KubeObject, validation: Validation) -> None:
        # per-parent conditions were filled in during validate
        await self.write_status(source)

    async def report_deployed(self, source: KubeObject, stack: Stack | None) -> None:
        _log.debug("route_status_unchanged_after_deploy")
