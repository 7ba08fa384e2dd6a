"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_CONTROLLER_NAME = "application-networking.k8s.aws/gateway-api-controller"

ALL_CONTROLLERS = (
    "gateway",
    "httproute",
    "grpcroute",
    "tlsroute",
    "targetgrouppolicy",
    "vpcassociationpolicy",
    "iamauthpolicy",
    "accesslogpolicy",
)


@dataclass
class ReconcileConfig:
    """Controller loop configuration."""

    retry_delay_seconds: float = 20.0
    max_concurrent_reconciles: int = 1
    timeout_seconds: float = 120.0
    backoff_base_seconds: float = 0.005
    backoff_max_seconds: float = 1000.0
    resync_period: str = "10m"
    enabled_controllers: list[str] = field(default_factory=lambda: list(ALL_CONTROLLERS))


@dataclass
class APIConfig:
    """Health API configuration."""

    port: int = 8081


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class LatticeFlowConfig:
    """Top-level controller configuration."""

    cluster_name: str = ""
    controller_name: str = DEFAULT_CONTROLLER_NAME
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
