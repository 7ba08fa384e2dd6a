"""Prometheus metrics for the controller loops."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

reconcile_total = Counter(
    "latticeflow_reconcile_total",
    "Reconciles finished, by outcome",
    ["controller", "result"],
)

reconcile_duration_seconds = Histogram(
    "latticeflow_reconcile_duration_seconds",
    "Wall time of one reconcile",
    ["controller"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120),
)

reconcile_errors_total = Counter(
    "latticeflow_reconcile_errors_total",
    "Reconcile failures, by error class",
    ["controller", "error_class"],
)

workqueue_depth = Gauge(
    "latticeflow_workqueue_depth",
    "Keys waiting to be reconciled",
    ["controller"],
)

drift_cleanups_total = Counter(
    "latticeflow_drift_cleanups_total",
    "Previously owned remote resources deleted after their identity changed",
    ["controller"],
)
