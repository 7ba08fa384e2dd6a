"""Reconcilers for every source kind."""

from latticeflow.controllers.base import Reconciler, Validation, condition_for
from latticeflow.controllers.gateway import (
    GATEWAY_FINALIZER,
    NO_BACKEND_MESSAGE,
    Gateway,
    GatewayInUseError,
    GatewayReconciler,
    is_controlled_gateway,
)
from latticeflow.controllers.policy import PolicyReconciler
from latticeflow.controllers.route import DUAL_STACK_MESSAGE, RouteReconciler, route_finalizer

__all__ = [
    "DUAL_STACK_MESSAGE",
    "GATEWAY_FINALIZER",
    "Gateway",
    "GatewayInUseError",
    "GatewayReconciler",
    "NO_BACKEND_MESSAGE",
    "PolicyReconciler",
    "Reconciler",
    "RouteReconciler",
    "Validation",
    "condition_for",
    "is_controlled_gateway",
    "route_finalizer",
]
