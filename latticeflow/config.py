"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from latticeflow.models.config import (
    ALL_CONTROLLERS,
    DEFAULT_CONTROLLER_NAME,
    APIConfig,
    LatticeFlowConfig,
    LogConfig,
    ReconcileConfig,
)

_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600}


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"LATTICEFLOW_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_duration(value: str) -> str:
    if not re.match(r"^[0-9]+(s|m|h)$", value):
        raise ValueError(f"Invalid duration format: {value}")
    return value


def parse_duration(value: str) -> int:
    """Convert a validated duration such as ``10m`` into seconds."""
    value = _validate_duration(value)
    return int(value[:-1]) * _DURATION_UNITS[value[-1]]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_controllers(value: str) -> list[str]:
    if not value:
        return list(ALL_CONTROLLERS)
    names = [name.strip().lower() for name in value.split(",") if name.strip()]
    unknown = sorted(set(names) - set(ALL_CONTROLLERS))
    if unknown:
        raise ValueError(f"Unknown controllers: {unknown}. Must be among {list(ALL_CONTROLLERS)}")
    return names


def load_config() -> LatticeFlowConfig:
    """Load configuration from LATTICEFLOW_* environment variables."""
    return LatticeFlowConfig(
        cluster_name=_env("CLUSTER_NAME", ""),
        controller_name=_env("CONTROLLER_NAME", DEFAULT_CONTROLLER_NAME),
        reconcile=ReconcileConfig(
            retry_delay_seconds=_env_float("RETRY_DELAY_SECONDS", 20.0, min_val=0.0),
            max_concurrent_reconciles=_env_int("MAX_CONCURRENT_RECONCILES", 1, min_val=1, max_val=32),
            timeout_seconds=_env_float("RECONCILE_TIMEOUT_SECONDS", 120.0, min_val=1.0),
            backoff_base_seconds=_env_float("BACKOFF_BASE_SECONDS", 0.005, min_val=0.001),
            backoff_max_seconds=_env_float("BACKOFF_MAX_SECONDS", 1000.0, min_val=1.0),
            resync_period=_validate_duration(_env("RESYNC_PERIOD", "10m")),
            enabled_controllers=_validate_controllers(_env("ENABLED_CONTROLLERS", "")),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8081, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
