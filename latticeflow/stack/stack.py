"""The per-reconcile resource stack.

A Stack is built fresh by a model builder for one source object, handed to a
deployer, and thrown away. It is never shared between reconciles.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import TypeVar, overload

from latticeflow.stack.errors import (
    DuplicateResourceError,
    MissingDependencyEndpointError,
    ResourceKindMismatchError,
    ResourceNotFoundError,
)
from latticeflow.stack.graph import ResourceGraph
from latticeflow.stack.identity import _to_plain
from latticeflow.stack.models import Resource, ResourceUID, StackID, resource_kind

R = TypeVar("R", bound=Resource)


class Stack:
    """Resources keyed by (kind, id) plus the dependency graph between them."""

    def __init__(self, stack_id: StackID) -> None:
        self._stack_id = stack_id
        self._resources: dict[ResourceUID, Resource] = {}
        self._graph = ResourceGraph()
        # id -> kinds it is stored under, to tell "absent" from "wrong kind"
        self._kinds_by_id: dict[str, list[str]] = {}

    @property
    def stack_id(self) -> StackID:
        return self._stack_id

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, res: object) -> bool:
        return isinstance(res, Resource) and res.uid in self._resources

    def add_resource(self, res: Resource) -> None:
        uid = res.uid
        if uid in self._resources:
            raise DuplicateResourceError(uid.kind, uid.id)
        self._resources[uid] = res
        self._graph.add_node(uid)
        self._kinds_by_id.setdefault(uid.id, []).append(uid.kind)

    @overload
    def get_resource(self, resource_id: str, kind: type[R]) -> R: ...

    @overload
    def get_resource(self, resource_id: str, kind: str) -> Resource: ...

    def get_resource(self, resource_id: str, kind: str | type[Resource]) -> Resource:
        """Return the resource stored under ``(kind, resource_id)``.

        Raises:
            ResourceNotFoundError: nothing is stored under that id.
            ResourceKindMismatchError: the id is stored, but as another kind.
        """
        kind_name = resource_kind(kind)
        res = self._resources.get(ResourceUID(kind=kind_name, id=resource_id))
        if res is not None:
            return res
        other_kinds = self._kinds_by_id.get(resource_id)
        if other_kinds:
            raise ResourceKindMismatchError(kind_name, resource_id, list(other_kinds))
        raise ResourceNotFoundError(kind_name, resource_id)

    def add_dependency(self, dependee: Resource, depender: Resource) -> None:
        """Record that *depender* must be applied after *dependee*.

        Both must already be in the stack; otherwise nothing changes.
        """
        dependee_uid = dependee.uid
        depender_uid = depender.uid
        if dependee_uid not in self._resources:
            raise MissingDependencyEndpointError("dependee", dependee_uid.kind, dependee_uid.id)
        if depender_uid not in self._resources:
            raise MissingDependencyEndpointError("depender", depender_uid.kind, depender_uid.id)
        self._graph.add_edge(dependee_uid, depender_uid)

    @overload
    def list_resources(self, kind: type[R]) -> list[R]: ...

    @overload
    def list_resources(self, kind: str) -> list[Resource]: ...

    def list_resources(self, kind: str | type[Resource]) -> list[Resource]:
        """All resources of *kind*, in the order they were added."""
        kind_name = resource_kind(kind)
        return [self._resources[uid] for uid in self._graph.nodes() if uid.kind == kind_name]

    def resources(self) -> list[Resource]:
        return [self._resources[uid] for uid in self._graph.nodes()]

    def dependencies(self, res: Resource) -> list[Resource]:
        """Resources *res* depends on."""
        return [self._resources[uid] for uid in self._graph.dependees(res.uid)]

    def topological_order(self) -> list[Resource]:
        """Resources ordered so every dependee precedes its dependers."""
        return [self._resources[uid] for uid in self._graph.topological_order()]

    def topological_traversal(self, visit: Callable[[Resource], None]) -> None:
        """Call *visit* on every resource in topological order.

        The first exception raised by *visit* stops the walk and propagates.
        """
        for res in self.topological_order():
            visit(res)


def marshal_stack(stack: Stack) -> str:
    """Render *stack* as JSON for debug logging."""
    by_kind: dict[str, list[object]] = {}
    for res in stack.resources():
        by_kind.setdefault(res.kind, []).append(_to_plain(res))
    return json.dumps(
        {
            "id": str(stack.stack_id),
            "resources": by_kind,
        },
        default=str,
    )
