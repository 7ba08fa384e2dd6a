"""Uniform read/compare view over Gateway API route objects.

Every wrapper holds a reference to the raw camelCase dict fetched from the API
server and the ``RouteKind`` of the route it came from. Equality between two
wrappers first checks that kind, so an HTTP rule never equals a GRPC rule even
when their fields line up.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

import structlog

from latticeflow.k8s.client import KubeClient, NoKindMatchError
from latticeflow.models.k8s import (
    Condition,
    ConditionStatus,
    ConditionType,
    GroupKind,
    ObjectType,
    UnsupportedKindError,
    get_new_conditions,
)
from latticeflow.models.objects import KubeObject

_log = structlog.get_logger(component="routes")


class RouteKind(StrEnum):
    HTTP = "HTTPRoute"
    GRPC = "GRPCRoute"
    TLS = "TLSRoute"


_ROUTE_TYPES: dict[RouteKind, type[Route]] = {}


@dataclass(frozen=True)
class ParentReference:
    name: str
    group: str | None = None
    kind: str | None = None
    namespace: str | None = None
    section_name: str | None = None
    port: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParentReference:
        return cls(
            name=data.get("name", ""),
            group=data.get("group"),
            kind=data.get("kind"),
            namespace=data.get("namespace"),
            section_name=data.get("sectionName"),
            port=data.get("port"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        for key, value in (
            ("group", self.group),
            ("kind", self.kind),
            ("namespace", self.namespace),
            ("sectionName", self.section_name),
            ("port", self.port),
        ):
            if value is not None:
                out[key] = value
        return out


@dataclass
class RouteParentStatus:
    parent_ref: ParentReference
    controller_name: str = ""
    conditions: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RouteParentStatus:
        return cls(
            parent_ref=ParentReference.from_dict(data.get("parentRef") or {}),
            controller_name=data.get("controllerName", ""),
            conditions=list(data.get("conditions") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "parentRef": self.parent_ref.to_dict(),
            "controllerName": self.controller_name,
            "conditions": self.conditions,
        }


class HeaderMatch:
    def __init__(self, route_kind: RouteKind, data: dict[str, Any]) -> None:
        self.route_kind = route_kind
        self._data = data

    @property
    def type(self) -> str | None:
        return self._data.get("type")

    @property
    def name(self) -> str:
        return self._data.get("name", "")

    @property
    def value(self) -> str:
        return self._data.get("value", "")

    def equals(self, other: HeaderMatch | None) -> bool:
        if other is None or other.route_kind != self.route_kind:
            return False
        return self.type == other.type and self.name == other.name and self.value == other.value


class RouteMatch:
    """Match predicates of one rule. Variants add their own fields."""

    route_kind: ClassVar[RouteKind]

    def __init__(self, data: dict[str, Any]) -> None:
        self._data = data

    def headers(self) -> list[HeaderMatch]:
        return [HeaderMatch(self.route_kind, h) for h in self._data.get("headers") or []]

    def _headers_equal(self, other: RouteMatch) -> bool:
        mine, theirs = self.headers(), other.headers()
        if len(mine) != len(theirs):
            return False
        return all(a.equals(b) for a, b in zip(mine, theirs, strict=True))

    def equals(self, other: RouteMatch | None) -> bool:
        if other is None or other.route_kind != self.route_kind:
            return False
        return self._headers_equal(other)


class BackendRef:
    def __init__(self, route_kind: RouteKind, data: dict[str, Any]) -> None:
        self.route_kind = route_kind
        self._data = data

    @property
    def weight(self) -> int | None:
        return self._data.get("weight")

    @property
    def group(self) -> str | None:
        return self._data.get("group")

    @property
    def kind(self) -> str | None:
        return self._data.get("kind")

    @property
    def name(self) -> str:
        return self._data.get("name", "")

    @property
    def namespace(self) -> str | None:
        return self._data.get("namespace")

    @property
    def port(self) -> int | None:
        return self._data.get("port")

    def equals(self, other: BackendRef | None) -> bool:
        if other is None or other.route_kind != self.route_kind:
            return False
        # absent and present weights never compare equal, even when the
        # present one is the API default
        if (self.weight is None) != (other.weight is None):
            return False
        if self.weight is not None and self.weight != other.weight:
            return False
        return (
            self.group == other.group
            and self.kind == other.kind
            and self.name == other.name
            and self.namespace == other.namespace
            and self.port == other.port
        )


class RouteRule:
    def __init__(self, route_kind: RouteKind, data: dict[str, Any]) -> None:
        self.route_kind = route_kind
        self._data = data

    def backend_refs(self) -> list[BackendRef]:
        return [BackendRef(self.route_kind, b) for b in self._data.get("backendRefs") or []]

    def matches(self) -> list[RouteMatch]:
        match_cls = _ROUTE_TYPES[self.route_kind].match_class
        if match_cls is None:
            return []
        return [match_cls(m) for m in self._data.get("matches") or []]

    def equals(self, other: RouteRule | None) -> bool:
        if other is None or other.route_kind != self.route_kind:
            return False
        return _list_equals(self.backend_refs(), other.backend_refs()) and _list_equals(
            self.matches(), other.matches()
        )


class RouteSpec:
    def __init__(self, route_kind: RouteKind, data: dict[str, Any]) -> None:
        self.route_kind = route_kind
        self._data = data

    def parent_refs(self) -> list[ParentReference]:
        return [ParentReference.from_dict(p) for p in self._data.get("parentRefs") or []]

    def hostnames(self) -> list[str]:
        return list(self._data.get("hostnames") or [])

    def rules(self) -> list[RouteRule]:
        return [RouteRule(self.route_kind, r) for r in self._data.get("rules") or []]

    def equals(self, other: RouteSpec | None) -> bool:
        if other is None or other.route_kind != self.route_kind:
            return False
        if self.parent_refs() != other.parent_refs():
            return False
        if self.hostnames() != other.hostnames():
            return False
        return _list_equals(self.rules(), other.rules())


class RouteStatus:
    """Per-parent status bookkeeping, written through to the wrapped dict."""

    def __init__(self, data: dict[str, Any]) -> None:
        self._data = data

    def parents(self) -> list[RouteParentStatus]:
        return [RouteParentStatus.from_dict(p) for p in self._data.get("parents") or []]

    def set_parents(self, parents: list[RouteParentStatus]) -> None:
        self._data["parents"] = [p.to_dict() for p in parents]

    def update_parent_refs(self, parent: ParentReference, controller_name: str) -> None:
        """Upsert the status entry for *parent*, keyed by parent name."""
        parents = self.parents()
        for entry in parents:
            if entry.parent_ref.name == parent.name:
                entry.parent_ref = parent
                entry.controller_name = controller_name
                break
        else:
            parents.append(RouteParentStatus(parent_ref=parent, controller_name=controller_name))
        self.set_parents(parents)

    def update_route_condition(self, parent: ParentReference, condition: Condition) -> None:
        """Merge *condition* into the entry for *parent*; unknown parents are ignored."""
        parents = self.parents()
        for entry in parents:
            if entry.parent_ref.name == parent.name:
                entry.conditions = get_new_conditions(entry.conditions, condition)
                self.set_parents(parents)
                return


class Route(KubeObject):
    """Base wrapper for one route object.

    Subclasses set ``route_kind``, ``object_type`` and ``match_class`` and
    register themselves for ``new_route`` on definition.
    """

    route_kind: ClassVar[RouteKind]
    object_type: ClassVar[ObjectType]
    match_class: ClassVar[type[RouteMatch] | None] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        kind = cls.__dict__.get("route_kind")
        if kind is not None:
            _ROUTE_TYPES[kind] = cls

    @property
    def group_kind(self) -> GroupKind:
        return self.object_type.group_kind

    @property
    def spec(self) -> RouteSpec:
        return RouteSpec(self.route_kind, self._obj["spec"])

    @property
    def status(self) -> RouteStatus:
        return RouteStatus(self._obj["status"])

    def deep_copy(self) -> Route:
        return type(self)(copy.deepcopy(self._obj))

    def equals(self, other: Route | None) -> bool:
        if other is None or other.route_kind != self.route_kind:
            return False
        return self.namespaced_name == other.namespaced_name and self.spec.equals(other.spec)


def _list_equals(mine: list[Any], theirs: list[Any]) -> bool:
    if len(mine) != len(theirs):
        return False
    return all(a.equals(b) for a, b in zip(mine, theirs, strict=True))


def route_type(kind: str) -> type[Route]:
    try:
        return _ROUTE_TYPES[RouteKind(kind)]
    except ValueError:
        raise UnsupportedKindError(kind) from None


def route_types() -> list[type[Route]]:
    return list(_ROUTE_TYPES.values())


def new_route(obj: dict[str, Any]) -> Route:
    """Wrap a fetched route object, dispatching on its ``kind`` field."""
    return route_type(obj.get("kind", ""))(obj)


def has_all_parent_refs_rejected(route: Route) -> bool:
    """True unless some parent entry holds Accepted=True."""
    for parent in route.status.parents():
        for cond in parent.conditions:
            if cond.get("type") == ConditionType.ACCEPTED and cond.get("status") == ConditionStatus.TRUE:
                return False
    return True


def is_parent_ref_accepted(route: Route, parent_ref: ParentReference) -> bool:
    for parent in route.status.parents():
        if parent.parent_ref != parent_ref:
            continue
        for cond in parent.conditions:
            if cond.get("type") == ConditionType.ACCEPTED:
                return cond.get("status") == ConditionStatus.TRUE
    return False


async def list_all_routes(client: KubeClient, namespace: str | None = None) -> list[Route]:
    """All routes of every registered kind; kinds not installed are skipped."""
    routes: list[Route] = []
    for cls in route_types():
        try:
            items = await client.list(cls.object_type, namespace)
        except NoKindMatchError:
            _log.debug("route_kind_not_installed", kind=str(cls.route_kind))
            continue
        routes.extend(cls(item) for item in items)
    return routes
