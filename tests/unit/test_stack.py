"""Tests for the resource stack, its dependency graph and content-addressed ids."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import ClassVar

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from latticeflow.stack import (
    CycleDetectedError,
    DuplicateResourceError,
    MissingDependencyEndpointError,
    Resource,
    ResourceGraph,
    ResourceKindMismatchError,
    ResourceNotFoundError,
    ResourceUID,
    Stack,
    StackError,
    StackID,
    canonical_json,
    id_from_hash,
    marshal_stack,
    topological_traversal,
)
from tests.fakes import FakeService, FakeTargetGroup


@dataclass
class _Listener(Resource):
    kind: ClassVar[str] = "StackTestListener"

    port: int = 80


def _stack() -> Stack:
    return Stack(StackID(namespace="default", name="checkout"))


# ---------------------------------------------------------------------------
# Add / get / list
# ---------------------------------------------------------------------------


class TestAddAndGet:
    def test_get_by_class_and_by_kind_name(self) -> None:
        stack = _stack()
        svc = FakeService(id="svc-1", name="checkout")
        stack.add_resource(svc)

        assert stack.get_resource("svc-1", FakeService) is svc
        assert stack.get_resource("svc-1", "LatticeService") is svc
        assert svc in stack
        assert len(stack) == 1

    def test_duplicate_kind_and_id_rejected(self) -> None:
        stack = _stack()
        stack.add_resource(FakeService(id="svc-1"))
        with pytest.raises(DuplicateResourceError):
            stack.add_resource(FakeService(id="svc-1", name="other"))
        assert len(stack) == 1

    def test_same_id_under_two_kinds_is_allowed(self) -> None:
        stack = _stack()
        stack.add_resource(FakeService(id="shared"))
        stack.add_resource(FakeTargetGroup(id="shared"))
        assert len(stack) == 2

    def test_missing_id_is_not_found(self) -> None:
        with pytest.raises(ResourceNotFoundError):
            _stack().get_resource("nope", FakeService)

    def test_wrong_kind_is_distinct_from_not_found(self) -> None:
        stack = _stack()
        stack.add_resource(FakeService(id="svc-1"))
        with pytest.raises(ResourceKindMismatchError) as exc_info:
            stack.get_resource("svc-1", FakeTargetGroup)
        assert exc_info.value.actual_kinds == ["LatticeService"]
        assert not isinstance(exc_info.value, ResourceNotFoundError)

    def test_list_resources_keeps_insertion_order_per_kind(self) -> None:
        stack = _stack()
        stack.add_resource(FakeTargetGroup(id="tg-b"))
        stack.add_resource(FakeService(id="svc-1"))
        stack.add_resource(FakeTargetGroup(id="tg-a"))

        assert [r.id for r in stack.list_resources(FakeTargetGroup)] == ["tg-b", "tg-a"]
        assert stack.list_resources("StackTestListener") == []

    def test_stack_errors_share_a_base(self) -> None:
        for cls in (
            DuplicateResourceError,
            ResourceNotFoundError,
            ResourceKindMismatchError,
            MissingDependencyEndpointError,
            CycleDetectedError,
        ):
            assert issubclass(cls, StackError)


# ---------------------------------------------------------------------------
# Dependencies and ordering
# ---------------------------------------------------------------------------


class TestDependencies:
    def test_dependency_endpoints_must_exist(self) -> None:
        stack = _stack()
        svc = FakeService(id="svc-1")
        tg = FakeTargetGroup(id="tg-1")
        stack.add_resource(svc)

        with pytest.raises(MissingDependencyEndpointError) as exc_info:
            stack.add_dependency(svc, tg)
        assert exc_info.value.endpoint == "depender"

        with pytest.raises(MissingDependencyEndpointError) as exc_info:
            stack.add_dependency(tg, svc)
        assert exc_info.value.endpoint == "dependee"
        assert stack.dependencies(svc) == []

    def test_dependees_come_first(self) -> None:
        stack = _stack()
        listener = _Listener(id="l-1")
        svc = FakeService(id="svc-1")
        tg = FakeTargetGroup(id="tg-1")
        for res in (listener, svc, tg):
            stack.add_resource(res)
        stack.add_dependency(svc, listener)
        stack.add_dependency(tg, listener)

        order = [r.id for r in stack.topological_order()]
        assert order.index("svc-1") < order.index("l-1")
        assert order.index("tg-1") < order.index("l-1")
        assert [r.id for r in stack.dependencies(listener)] == ["svc-1", "tg-1"]

    def test_independent_resources_follow_insertion_order(self) -> None:
        stack = _stack()
        for i in range(5):
            stack.add_resource(FakeTargetGroup(id=f"tg-{i}"))
        assert [r.id for r in stack.topological_order()] == [f"tg-{i}" for i in range(5)]

    def test_cycle_detected_before_any_visit(self) -> None:
        stack = _stack()
        a, b = FakeService(id="a"), FakeTargetGroup(id="b")
        stack.add_resource(a)
        stack.add_resource(b)
        stack.add_dependency(a, b)
        stack.add_dependency(b, a)

        visited: list[str] = []
        with pytest.raises(CycleDetectedError):
            stack.topological_traversal(lambda r: visited.append(r.id))
        assert visited == []

    def test_self_loop_is_a_cycle(self) -> None:
        stack = _stack()
        a = FakeService(id="a")
        stack.add_resource(a)
        stack.add_dependency(a, a)
        with pytest.raises(CycleDetectedError):
            stack.topological_order()

    def test_visitor_error_stops_the_walk(self) -> None:
        stack = _stack()
        for i in range(3):
            stack.add_resource(FakeTargetGroup(id=f"tg-{i}"))
        visited: list[str] = []

        def visit(res: Resource) -> None:
            visited.append(res.id)
            if res.id == "tg-1":
                raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            stack.topological_traversal(visit)
        assert visited == ["tg-0", "tg-1"]


@st.composite
def _dags(draw: st.DrawFn) -> tuple[int, list[tuple[int, int]]]:
    n = draw(st.integers(min_value=1, max_value=12))
    pairs = [(i, j) for i in range(n) for j in range(i + 1, n)]
    edges = draw(st.lists(st.sampled_from(pairs), unique=True)) if pairs else []
    return n, edges


class TestGraphProperties:
    @given(dag=_dags(), perm_seed=st.randoms(use_true_random=False))
    @settings(max_examples=75, deadline=None)
    def test_every_edge_respected(self, dag: tuple[int, list[tuple[int, int]]], perm_seed) -> None:
        n, edges = dag
        labels = list(range(n))
        perm_seed.shuffle(labels)
        graph = ResourceGraph()
        nodes = [ResourceUID(kind="K", id=str(label)) for label in labels]
        for node in nodes:
            graph.add_node(node)
        for lo, hi in edges:
            graph.add_edge(nodes[lo], nodes[hi])

        order = graph.topological_order()
        assert sorted(order, key=str) == sorted(nodes, key=str)
        pos = {node: i for i, node in enumerate(order)}
        for lo, hi in edges:
            assert pos[nodes[lo]] < pos[nodes[hi]]

    @given(dag=_dags())
    @settings(max_examples=50, deadline=None)
    def test_order_is_deterministic(self, dag: tuple[int, list[tuple[int, int]]]) -> None:
        n, edges = dag

        def build() -> list[ResourceUID]:
            graph = ResourceGraph()
            nodes = [ResourceUID(kind="K", id=str(i)) for i in range(n)]
            for node in nodes:
                graph.add_node(node)
            for lo, hi in edges:
                graph.add_edge(nodes[lo], nodes[hi])
            seen: list[ResourceUID] = []
            topological_traversal(graph, seen.append)
            return seen

        assert build() == build()


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class TestIdentity:
    def test_key_order_does_not_change_the_id(self) -> None:
        assert id_from_hash({"b": 1, "a": [1, 2]}) == id_from_hash({"a": [1, 2], "b": 1})

    def test_id_format(self) -> None:
        rid = id_from_hash({"port": 80})
        assert rid.startswith("id-")
        assert len(rid) == len("id-") + 64
        assert rid == rid.lower()

    def test_canonical_encoding_is_compact_and_sorted(self) -> None:
        assert canonical_json({"b": "é", "a": 1}) == '{"a":1,"b":"é"}'.encode()

    def test_dataclasses_hash_like_their_fields(self) -> None:
        tg = FakeTargetGroup(id="tg", name="checkout", port=8080)
        assert id_from_hash(tg) == id_from_hash({"id": "tg", "name": "checkout", "port": 8080})

    def test_different_content_different_id(self) -> None:
        assert id_from_hash({"port": 80}) != id_from_hash({"port": 81})

    def test_unencodable_values_rejected(self) -> None:
        with pytest.raises(TypeError):
            id_from_hash({"when": object()})


class TestMarshal:
    def test_marshal_groups_by_kind(self) -> None:
        stack = _stack()
        stack.add_resource(FakeService(id="svc-1", name="checkout"))
        stack.add_resource(FakeTargetGroup(id="tg-1", name="checkout", port=8080))

        doc = json.loads(marshal_stack(stack))
        assert doc["id"] == "default/checkout"
        assert doc["resources"]["LatticeService"] == [{"id": "svc-1", "name": "checkout"}]
        assert doc["resources"]["LatticeTargetGroup"][0]["port"] == 8080
