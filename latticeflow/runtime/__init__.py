"""Reconcile runtime: error taxonomy, results and the controller loop."""

from latticeflow.runtime.controller import Controller, ControllerManager
from latticeflow.runtime.errors import (
    LATTICE_RETRY,
    ErrorClass,
    RemoteConflictError,
    RemoteError,
    RemoteInvalidError,
    RemoteNotFoundError,
    RequeueNeeded,
    RequeueNeededAfter,
    RetryableError,
    classify_error,
    new_retry_error,
)
from latticeflow.runtime.reconcile import DONE, ReconcileResult, handle_reconcile_error

__all__ = [
    "DONE",
    "LATTICE_RETRY",
    "Controller",
    "ControllerManager",
    "ErrorClass",
    "ReconcileResult",
    "RemoteConflictError",
    "RemoteError",
    "RemoteInvalidError",
    "RemoteNotFoundError",
    "RequeueNeeded",
    "RequeueNeededAfter",
    "RetryableError",
    "classify_error",
    "handle_reconcile_error",
    "new_retry_error",
]
