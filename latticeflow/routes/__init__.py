"""Route abstraction layer.

Importing this package registers every route variant with ``new_route``.
"""

from latticeflow.routes.base import (
    BackendRef,
    HeaderMatch,
    ParentReference,
    Route,
    RouteKind,
    RouteMatch,
    RouteParentStatus,
    RouteRule,
    RouteSpec,
    RouteStatus,
    UnsupportedKindError,
    has_all_parent_refs_rejected,
    is_parent_ref_accepted,
    list_all_routes,
    new_route,
    route_type,
    route_types,
)
from latticeflow.routes.grpc import GRPCRoute, GRPCRouteMatch
from latticeflow.routes.http import HTTPRoute, HTTPRouteMatch
from latticeflow.routes.tls import TLSRoute

__all__ = [
    "BackendRef",
    "GRPCRoute",
    "GRPCRouteMatch",
    "HTTPRoute",
    "HTTPRouteMatch",
    "HeaderMatch",
    "ParentReference",
    "Route",
    "RouteKind",
    "RouteMatch",
    "RouteParentStatus",
    "RouteRule",
    "RouteSpec",
    "RouteStatus",
    "TLSRoute",
    "UnsupportedKindError",
    "has_all_parent_refs_rejected",
    "is_parent_ref_accepted",
    "list_all_routes",
    "new_route",
    "route_type",
    "route_types",
]
