"""Kubernetes-side value types shared by routes, policies and controllers.

Objects are handled as the camelCase dicts the API server returns; these types
cover the few shapes the controllers need to read and write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

GATEWAY_API_GROUP = "gateway.networking.k8s.io"
LATTICE_API_GROUP = "application-networking.k8s.aws"
CORE_GROUP = ""


class ConditionStatus(StrEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionType(StrEnum):
    ACCEPTED = "Accepted"
    RESOLVED_REFS = "ResolvedRefs"
    PROGRAMMED = "Programmed"


class ConditionReason(StrEnum):
    ACCEPTED = "Accepted"
    INVALID = "Invalid"
    TARGET_NOT_FOUND = "TargetNotFound"
    CONFLICTED = "Conflicted"
    UNKNOWN = "Unknown"
    NO_MATCHING_PARENT = "NoMatchingParent"
    NOT_ALLOWED_BY_LISTENERS = "NotAllowedByListeners"
    RESOLVED_REFS = "ResolvedRefs"
    INVALID_KIND = "InvalidKind"
    BACKEND_NOT_FOUND = "BackendNotFound"
    UNSUPPORTED_VALUE = "UnsupportedValue"
    PROGRAMMED = "Programmed"
    PENDING = "Pending"


def _now() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class Condition:
    """A typed, reasoned, timestamped status entry."""

    type: str
    status: str
    reason: str
    message: str = ""
    observed_generation: int = 0
    last_transition_time: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "status": self.status,
            "reason": self.reason,
            "message": self.message,
            "observedGeneration": self.observed_generation,
            "lastTransitionTime": self.last_transition_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        return cls(
            type=data.get("type", ""),
            status=data.get("status", ConditionStatus.UNKNOWN),
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            observed_generation=int(data.get("observedGeneration") or 0),
            last_transition_time=data.get("lastTransitionTime") or _now(),
        )


def find_condition(conditions: list[dict[str, Any]], cond_type: str) -> dict[str, Any] | None:
    for cond in conditions:
        if cond.get("type") == cond_type:
            return cond
    return None


def get_new_conditions(
    old: list[dict[str, Any]],
    new: Condition,
) -> list[dict[str, Any]]:
    """Merge *new* into *old* by condition type.

    A condition of the same type is replaced in place; its
    ``lastTransitionTime`` is carried over when the status did not change.
    Other conditions are kept. A new type is appended.
    """
    merged: list[dict[str, Any]] = []
    replaced = False
    for cond in old:
        if cond.get("type") != new.type:
            merged.append(cond)
            continue
        entry = new.to_dict()
        if cond.get("status") == new.status and cond.get("lastTransitionTime"):
            entry["lastTransitionTime"] = cond["lastTransitionTime"]
        merged.append(entry)
        replaced = True
    if not replaced:
        merged.append(new.to_dict())
    return merged


@dataclass(frozen=True)
class GroupKind:
    group: str
    kind: str

    def __str__(self) -> str:
        return f"{self.kind}.{self.group}" if self.group else self.kind


@dataclass(frozen=True)
class NamespacedName:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def of(cls, obj: dict[str, Any]) -> NamespacedName:
        meta = obj.get("metadata") or {}
        return cls(namespace=meta.get("namespace", ""), name=meta.get("name", ""))


@dataclass(frozen=True)
class TargetRef:
    """A policy's reference to the object it attaches to."""

    group: str
    kind: str
    name: str
    namespace: str | None = None

    @property
    def group_kind(self) -> GroupKind:
        return GroupKind(group=self.group, kind=self.kind)

    def effective_namespace(self, default: str) -> str:
        return self.namespace or default

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TargetRef | None:
        if not data:
            return None
        return cls(
            group=data.get("group", ""),
            kind=data.get("kind", ""),
            name=data.get("name", ""),
            namespace=data.get("namespace") or None,
        )


@dataclass(frozen=True)
class ObjectType:
    """Where objects of one kind live in the API."""

    group: str
    version: str
    kind: str
    plural: str
    namespaced: bool = True

    @property
    def group_kind(self) -> GroupKind:
        return GroupKind(group=self.group, kind=self.kind)

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


GATEWAY = ObjectType(GATEWAY_API_GROUP, "v1", "Gateway", "gateways")
GATEWAY_CLASS = ObjectType(GATEWAY_API_GROUP, "v1", "GatewayClass", "gatewayclasses", namespaced=False)
HTTP_ROUTE = ObjectType(GATEWAY_API_GROUP, "v1", "HTTPRoute", "httproutes")
GRPC_ROUTE = ObjectType(GATEWAY_API_GROUP, "v1", "GRPCRoute", "grpcroutes")
TLS_ROUTE = ObjectType(GATEWAY_API_GROUP, "v1alpha2", "TLSRoute", "tlsroutes")
SERVICE = ObjectType(CORE_GROUP, "v1", "Service", "services")
SERVICE_IMPORT = ObjectType(LATTICE_API_GROUP, "v1alpha1", "ServiceImport", "serviceimports")


class UnsupportedKindError(ValueError):
    """The object's kind is not one this controller knows how to handle."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"unsupported kind: {kind!r}")
        self.kind = kind


def group_of(api_version: str) -> str:
    """Group part of an ``apiVersion``; core objects have the empty group."""
    return api_version.rpartition("/")[0]
