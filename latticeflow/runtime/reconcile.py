"""Reconcile results and the mapping from errors to requeue decisions."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from latticeflow.runtime.errors import (
    RemoteNotFoundError,
    RequeueNeeded,
    RequeueNeededAfter,
    RetryableError,
)

_log = structlog.get_logger(component="runtime.reconcile")


@dataclass(frozen=True)
class ReconcileResult:
    requeue: bool = False
    requeue_after: float = 0.0


DONE = ReconcileResult()


def handle_reconcile_error(exc: Exception | None, retry_delay: float = 20.0) -> ReconcileResult:
    """Turn a retry signal into a result; re-raise anything else.

    Retryable and deploy-time not-found failures wait the fixed
    *retry_delay*. Explicit requeue requests are honoured as given.
    """
    if exc is None:
        return DONE
    if isinstance(exc, (RetryableError, RemoteNotFoundError)):
        _log.info("retrying_reconcile", after_seconds=retry_delay, reason=str(exc))
        return ReconcileResult(requeue_after=retry_delay)
    if isinstance(exc, RequeueNeededAfter):
        _log.info("requeue_after", after_seconds=exc.duration, reason=exc.reason)
        return ReconcileResult(requeue_after=exc.duration)
    if isinstance(exc, RequeueNeeded):
        _log.info("requeue", reason=exc.reason)
        return ReconcileResult(requeue=True)
    raise exc
