"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

_log = structlog.get_logger(component="observability.logging")


def setup_logging(level: str = "info") -> None:
    """Configure structlog for JSON output to stderr."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]


@contextmanager
def reconcile_trace(controller: str, name: str, namespace: str) -> Iterator[str]:
    """Bind a fresh trace id and the object key for the duration of one reconcile.

    Every log line emitted inside the block carries ``trace_id``,
    ``controller``, ``name`` and ``namespace``. Yields the trace id.
    """
    trace_id = uuid.uuid4().hex
    tokens = structlog.contextvars.bind_contextvars(
        trace_id=trace_id,
        controller=controller,
        name=name,
        namespace=namespace,
    )
    started = time.monotonic()
    _log.debug("reconcile_trace_start")
    try:
        yield trace_id
    finally:
        _log.debug("reconcile_trace_end", elapsed_ms=round((time.monotonic() - started) * 1000, 2))
        structlog.contextvars.reset_contextvars(**tokens)
