"""Core data structures for latticeflow."""

from latticeflow.models.config import LatticeFlowConfig
from latticeflow.models.k8s import (
    Condition,
    ConditionReason,
    ConditionStatus,
    ConditionType,
    GroupKind,
    NamespacedName,
    ObjectType,
    TargetRef,
    find_condition,
    get_new_conditions,
)
from latticeflow.models.objects import KubeObject

__all__ = [
    "Condition",
    "ConditionReason",
    "ConditionStatus",
    "ConditionType",
    "GroupKind",
    "KubeObject",
    "LatticeFlowConfig",
    "NamespacedName",
    "ObjectType",
    "TargetRef",
    "find_condition",
    "get_new_conditions",
]
