"""GRPCRoute variant."""

from __future__ import annotations

from typing import Any

from latticeflow.models.k8s import GRPC_ROUTE
from latticeflow.routes.base import Route, RouteKind, RouteMatch


class GRPCRouteMatch(RouteMatch):
    route_kind = RouteKind.GRPC

    @property
    def method(self) -> dict[str, Any] | None:
        return self._data.get("method")

    def equals(self, other: RouteMatch | None) -> bool:
        if not isinstance(other, GRPCRouteMatch) or not self._headers_equal(other):
            return False
        return self.method == other.method


class GRPCRoute(Route):
    route_kind = RouteKind.GRPC
    object_type = GRPC_ROUTE
    match_class = GRPCRouteMatch
