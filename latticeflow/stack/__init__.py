"""Per-reconcile desired-state resource graph.

Exposes:
    Stack          -- typed resource container with a dependency DAG.
    Resource       -- base dataclass every desired remote resource derives from.
    ResourceUID    -- (kind, id) key.
    StackID        -- namespaced name of the originating source object.
    id_from_hash   -- content-addressed identity used for drift detection.
"""

from latticeflow.stack.errors import (
    CycleDetectedError,
    DuplicateLogicalKeyError,
    DuplicateResourceError,
    MissingDependencyEndpointError,
    ResourceKindMismatchError,
    ResourceNotFoundError,
    StackError,
)
from latticeflow.stack.graph import ResourceGraph, topological_traversal
from latticeflow.stack.identity import canonical_json, id_from_hash
from latticeflow.stack.models import Resource, ResourceUID, StackID
from latticeflow.stack.stack import Stack, marshal_stack

__all__ = [
    "CycleDetectedError",
    "DuplicateLogicalKeyError",
    "DuplicateResourceError",
    "MissingDependencyEndpointError",
    "Resource",
    "ResourceGraph",
    "ResourceKindMismatchError",
    "ResourceNotFoundError",
    "ResourceUID",
    "Stack",
    "StackError",
    "StackID",
    "canonical_json",
    "id_from_hash",
    "marshal_stack",
    "topological_traversal",
]
