"""Fixed mapping between supported target objects and their GroupKind."""

from __future__ import annotations

from typing import Any

from latticeflow.models.k8s import (
    GATEWAY,
    GRPC_ROUTE,
    HTTP_ROUTE,
    SERVICE,
    TLS_ROUTE,
    GroupKind,
    ObjectType,
    UnsupportedKindError,
    group_of,
)

_TARGET_TYPES: dict[GroupKind, ObjectType] = {
    t.group_kind: t for t in (GATEWAY, HTTP_ROUTE, GRPC_ROUTE, TLS_ROUTE, SERVICE)
}


def obj_to_group_kind(obj: dict[str, Any]) -> GroupKind:
    """GroupKind of a fetched target object."""
    gk = GroupKind(group=group_of(obj.get("apiVersion", "")), kind=obj.get("kind", ""))
    if gk not in _TARGET_TYPES:
        raise UnsupportedKindError(str(gk))
    return gk


def group_kind_to_obj(gk: GroupKind) -> ObjectType:
    """Object type to fetch for a TargetRef's GroupKind."""
    try:
        return _TARGET_TYPES[gk]
    except KeyError:
        raise UnsupportedKindError(str(gk)) from None


def supported_group_kinds() -> frozenset[GroupKind]:
    return frozenset(_TARGET_TYPES)
