"""Attachment policy wrappers.

The closed set of policy kinds is described by ``PolicyType`` entries in a
registry keyed by ``PolicyKind``; a ``Policy`` wraps one fetched object of
one of those kinds.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from latticeflow.models.k8s import (
    GATEWAY,
    GRPC_ROUTE,
    HTTP_ROUTE,
    LATTICE_API_GROUP,
    SERVICE,
    ConditionStatus,
    ConditionType,
    GroupKind,
    ObjectType,
    TargetRef,
    UnsupportedKindError,
    find_condition,
)
from latticeflow.models.objects import KubeObject


class PolicyKind(StrEnum):
    TARGET_GROUP = "TargetGroupPolicy"
    VPC_ASSOCIATION = "VpcAssociationPolicy"
    IAM_AUTH = "IAMAuthPolicy"
    ACCESS_LOG = "AccessLogPolicy"


@dataclass(frozen=True)
class PolicyType:
    kind: PolicyKind
    object_type: ObjectType
    target_kinds: frozenset[GroupKind]
    finalizer: str = ""


def _policy_object_type(kind: PolicyKind, plural: str) -> ObjectType:
    return ObjectType(LATTICE_API_GROUP, "v1alpha1", str(kind), plural)


_ROUTE_TARGETS = frozenset({GATEWAY.group_kind, HTTP_ROUTE.group_kind, GRPC_ROUTE.group_kind})

POLICY_TYPES: dict[PolicyKind, PolicyType] = {
    PolicyKind.TARGET_GROUP: PolicyType(
        kind=PolicyKind.TARGET_GROUP,
        object_type=_policy_object_type(PolicyKind.TARGET_GROUP, "targetgrouppolicies"),
        target_kinds=frozenset({SERVICE.group_kind}),
    ),
    PolicyKind.VPC_ASSOCIATION: PolicyType(
        kind=PolicyKind.VPC_ASSOCIATION,
        object_type=_policy_object_type(PolicyKind.VPC_ASSOCIATION, "vpcassociationpolicies"),
        target_kinds=frozenset({GATEWAY.group_kind}),
    ),
    PolicyKind.IAM_AUTH: PolicyType(
        kind=PolicyKind.IAM_AUTH,
        object_type=_policy_object_type(PolicyKind.IAM_AUTH, "iamauthpolicies"),
        target_kinds=_ROUTE_TARGETS,
        finalizer="application-networking.k8s.aws/iam-auth-policy",
    ),
    PolicyKind.ACCESS_LOG: PolicyType(
        kind=PolicyKind.ACCESS_LOG,
        object_type=_policy_object_type(PolicyKind.ACCESS_LOG, "accesslogpolicies"),
        target_kinds=_ROUTE_TARGETS,
        finalizer="accesslogpolicy.k8s.aws/resources",
    ),
}


def policy_type(kind: str) -> PolicyType:
    try:
        return POLICY_TYPES[PolicyKind(kind)]
    except ValueError:
        raise UnsupportedKindError(kind) from None


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.min.replace(tzinfo=UTC)
    return datetime.fromisoformat(value)


class Policy(KubeObject):
    """One fetched policy object."""

    def __init__(self, ptype: PolicyType, obj: dict[str, Any]) -> None:
        super().__init__(obj)
        self.policy_type = ptype

    @classmethod
    def wrap(cls, obj: dict[str, Any]) -> Policy:
        """Wrap *obj*, dispatching on its ``kind`` field."""
        return cls(policy_type(obj.get("kind", "")), obj)

    def __repr__(self) -> str:
        return f"{self.kind}({self.namespace}/{self.name})"

    @property
    def kind(self) -> PolicyKind:
        return self.policy_type.kind

    @property
    def creation_timestamp(self) -> datetime:
        return _parse_timestamp(self._obj["metadata"].get("creationTimestamp"))

    @property
    def spec(self) -> dict[str, Any]:
        return self._obj["spec"]

    @property
    def target_ref(self) -> TargetRef | None:
        return TargetRef.from_dict(self._obj["spec"].get("targetRef"))

    def accepted_reason(self) -> str | None:
        cond = find_condition(self.conditions(), ConditionType.ACCEPTED)
        return cond.get("reason") if cond else None

    def holds_target(self) -> bool:
        """Accepted for the current spec; acceptance of an older generation is stale."""
        cond = find_condition(self.conditions(), ConditionType.ACCEPTED)
        if cond is None or cond.get("status") != ConditionStatus.TRUE:
            return False
        return int(cond.get("observedGeneration") or 0) == self.generation

    def conflict_sort_key(self) -> tuple[datetime, str, str]:
        return (self.creation_timestamp, self.namespace, self.name)

    def deep_copy(self) -> Policy:
        return Policy(self.policy_type, copy.deepcopy(self._obj))

    def equals(self, other: Policy | None) -> bool:
        if other is None or other.kind != self.kind:
            return False
        return (
            self.namespaced_name == other.namespaced_name
            and self.target_ref == other.target_ref
            and self.spec == other.spec
        )
