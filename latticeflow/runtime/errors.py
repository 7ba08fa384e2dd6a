"""Error taxonomy for reconciles.

Remote failures are raised by deployers and cleaners as one of the
``Remote*`` classes below and classified once, by ``classify_error``, into an
``ErrorClass`` that decides whether the next attempt waits for the user, a
fixed delay, or exponential backoff.
"""

from __future__ import annotations

from enum import StrEnum

from latticeflow.k8s.client import NotFoundError, StaleObjectError
from latticeflow.stack.errors import StackError

LATTICE_RETRY = "LATTICE_RETRY"
RETRY_ERROR_DELAY_SECONDS = 10.0


class RemoteError(Exception):
    """A failure reported by the remote control plane."""

    def __init__(self, message: str, resource_kind: str = "", resource_id: str = "") -> None:
        super().__init__(message)
        self.resource_kind = resource_kind
        self.resource_id = resource_id


class RemoteNotFoundError(RemoteError):
    """A remote resource is missing; during deploy it means "not ready yet"."""


class RemoteConflictError(RemoteError):
    """Another source object already owns the same remote identity."""


class RemoteInvalidError(RemoteError):
    """The remote side rejected the desired state as invalid."""


class RetryableError(RemoteError):
    """A transient failure worth retrying after the fixed delay."""

    def __init__(self, message: str = LATTICE_RETRY, resource_kind: str = "", resource_id: str = "") -> None:
        super().__init__(message, resource_kind, resource_id)


class RequeueNeededAfter(Exception):
    """Requeue after ``duration`` seconds without counting as a failure."""

    def __init__(self, reason: str, duration: float) -> None:
        super().__init__(f"requeue needed after {duration}s: {reason}")
        self.reason = reason
        self.duration = duration


class RequeueNeeded(Exception):
    """Requeue through the rate limiter without counting as a failure."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"requeue needed: {reason}")
        self.reason = reason


def new_retry_error() -> RequeueNeededAfter:
    return RequeueNeededAfter(LATTICE_RETRY, RETRY_ERROR_DELAY_SECONDS)


class ErrorClass(StrEnum):
    NOT_FOUND = "not_found"
    STACK = "stack"
    INVALID = "invalid"
    CONFLICT = "conflict"
    RETRYABLE = "retryable"
    STALE = "stale"
    UNKNOWN = "unknown"


def classify_error(exc: BaseException) -> ErrorClass:
    if isinstance(exc, (NotFoundError, RemoteNotFoundError)):
        return ErrorClass.NOT_FOUND
    if isinstance(exc, StackError):
        return ErrorClass.STACK
    if isinstance(exc, RemoteInvalidError):
        return ErrorClass.INVALID
    if isinstance(exc, RemoteConflictError):
        return ErrorClass.CONFLICT
    if isinstance(exc, (RetryableError, RequeueNeededAfter, RequeueNeeded)):
        return ErrorClass.RETRYABLE
    if isinstance(exc, StaleObjectError):
        return ErrorClass.STALE
    return ErrorClass.UNKNOWN
