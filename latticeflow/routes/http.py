"""HTTPRoute variant."""

from __future__ import annotations

from typing import Any

from latticeflow.models.k8s import HTTP_ROUTE
from latticeflow.routes.base import Route, RouteKind, RouteMatch


class HTTPRouteMatch(RouteMatch):
    route_kind = RouteKind.HTTP

    @property
    def path(self) -> dict[str, Any] | None:
        return self._data.get("path")

    @property
    def method(self) -> str | None:
        return self._data.get("method")

    @property
    def query_params(self) -> list[dict[str, Any]]:
        return list(self._data.get("queryParams") or [])

    def equals(self, other: RouteMatch | None) -> bool:
        if not isinstance(other, HTTPRouteMatch) or not self._headers_equal(other):
            return False
        return self.path == other.path and self.query_params == other.query_params and self.method == other.method


class HTTPRoute(Route):
    route_kind = RouteKind.HTTP
    object_type = HTTP_ROUTE
    match_class = HTTPRouteMatch
