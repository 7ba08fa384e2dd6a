"""TLSRoute variant. TLS rules carry no match predicates."""

from __future__ import annotations

from latticeflow.models.k8s import TLS_ROUTE
from latticeflow.routes.base import Route, RouteKind


class TLSRoute(Route):
    route_kind = RouteKind.TLS
    object_type = TLS_ROUTE
