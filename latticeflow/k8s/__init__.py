"""Cluster access: client, finalizers and events."""

from latticeflow.k8s.client import (
    ApiKubeClient,
    KubeClient,
    KubeError,
    NoKindMatchError,
    NotFoundError,
    StaleObjectError,
)
from latticeflow.k8s.events import EventRecorder, EventType
from latticeflow.k8s.finalizer import FinalizerManager, has_finalizer

__all__ = [
    "ApiKubeClient",
    "EventRecorder",
    "EventType",
    "FinalizerManager",
    "KubeClient",
    "KubeError",
    "NoKindMatchError",
    "NotFoundError",
    "StaleObjectError",
    "has_finalizer",
]
