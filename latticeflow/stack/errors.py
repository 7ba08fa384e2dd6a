"""Errors raised by the resource graph.

Every error here is a contract violation by whoever assembled the stack
(normally a model builder). They are never reported through object status.
"""

from __future__ import annotations


class StackError(Exception):
    """Base class for resource graph contract violations."""


class DuplicateResourceError(StackError):
    """A resource with the same (kind, id) is already in the stack."""

    def __init__(self, kind: str, resource_id: str) -> None:
        super().__init__(f"resource already exists, kind: {kind}, id: {resource_id}")
        self.kind = kind
        self.resource_id = resource_id


class ResourceNotFoundError(StackError):
    """No resource with the requested (kind, id) exists."""

    def __init__(self, kind: str, resource_id: str) -> None:
        super().__init__(f"resource {kind}/{resource_id} not found")
        self.kind = kind
        self.resource_id = resource_id


class ResourceKindMismatchError(StackError):
    """The id exists, but only under kinds other than the requested one."""

    def __init__(self, requested_kind: str, resource_id: str, actual_kinds: list[str]) -> None:
        super().__init__(
            f"resource {resource_id} requested as {requested_kind} but stored as {', '.join(actual_kinds)}"
        )
        self.requested_kind = requested_kind
        self.resource_id = resource_id
        self.actual_kinds = actual_kinds


class MissingDependencyEndpointError(StackError):
    """One endpoint of a dependency edge was never added to the stack."""

    def __init__(self, endpoint: str, kind: str, resource_id: str) -> None:
        super().__init__(f"{endpoint} resource didn't exist, kind: {kind}, id: {resource_id}")
        self.endpoint = endpoint
        self.kind = kind
        self.resource_id = resource_id


class CycleDetectedError(StackError):
    """The dependency graph cannot be ordered."""

    def __init__(self, remaining: list[str]) -> None:
        super().__init__(f"dependency cycle detected among: {', '.join(remaining)}")
        self.remaining = remaining


class DuplicateLogicalKeyError(StackError):
    """Two resources in one stack claim the same logical key."""

    def __init__(self, logical_key: str, first: str, second: str) -> None:
        super().__init__(f"logical key {logical_key} claimed by both {first} and {second}")
        self.logical_key = logical_key
