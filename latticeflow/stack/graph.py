"""Directed dependency graph over resource UIDs.

Edges point from dependee to depender. Node order is insertion order and is
used both for listing and as the tie-breaker during topological traversal,
so a given sequence of ``add_node``/``add_edge`` calls always yields the same
visitation order.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable

from latticeflow.stack.errors import CycleDetectedError
from latticeflow.stack.models import ResourceUID


class ResourceGraph:
    """Insertion-ordered DAG of ResourceUIDs."""

    def __init__(self) -> None:
        # dict preserves insertion order; values are unused
        self._nodes: dict[ResourceUID, None] = {}
        self._outbound: dict[ResourceUID, dict[ResourceUID, None]] = {}
        self._inbound: dict[ResourceUID, dict[ResourceUID, None]] = {}

    def __contains__(self, node: object) -> bool:
        return node in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def add_node(self, node: ResourceUID) -> None:
        if node in self._nodes:
            return
        self._nodes[node] = None
        self._outbound[node] = {}
        self._inbound[node] = {}

    def add_edge(self, dependee: ResourceUID, depender: ResourceUID) -> None:
        """Add ``dependee -> depender``. Both nodes must already exist."""
        self._outbound[dependee][depender] = None
        self._inbound[depender][dependee] = None

    def nodes(self) -> list[ResourceUID]:
        return list(self._nodes)

    def dependees(self, node: ResourceUID) -> list[ResourceUID]:
        return list(self._inbound[node])

    def topological_order(self) -> list[ResourceUID]:
        """Return every node with dependees strictly before their dependers.

        Raises:
            CycleDetectedError: if some nodes can never become ready.
        """
        in_degree = {node: len(self._inbound[node]) for node in self._nodes}
        ready = deque(node for node in self._nodes if in_degree[node] == 0)
        order: list[ResourceUID] = []

        while ready:
            node = ready.popleft()
            order.append(node)
            for depender in self._outbound[node]:
                in_degree[depender] -= 1
                if in_degree[depender] == 0:
                    ready.append(depender)

        if len(order) != len(self._nodes):
            remaining = [str(node) for node in self._nodes if in_degree[node] > 0]
            raise CycleDetectedError(remaining)
        return order


def topological_traversal(graph: ResourceGraph, visit: Callable[[ResourceUID], None]) -> None:
    """Visit nodes in topological order; the first visitor exception aborts the walk.

    The order is computed before the first visit, so a cyclic graph fails
    without visiting anything.
    """
    for node in graph.topological_order():
        visit(node)
