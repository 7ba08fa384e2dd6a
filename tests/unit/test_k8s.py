"""Tests for finalizers, events, conditions and the shared object wrapper."""

from __future__ import annotations

import pytest

from latticeflow.k8s import EventRecorder, EventType, FinalizerManager, StaleObjectError, has_finalizer
from latticeflow.models import KubeObject
from latticeflow.models.k8s import (
    GATEWAY,
    Condition,
    ConditionStatus,
    ConditionType,
    NamespacedName,
    get_new_conditions,
)
from tests.fakes import FakeKubeClient, make_gateway

FINALIZER = "gateway.k8s.aws/resources"


# ---------------------------------------------------------------------------
# Finalizers
# ---------------------------------------------------------------------------


class TestFinalizerManager:
    async def test_add_is_idempotent(self, kube: FakeKubeClient) -> None:
        obj = kube.add(GATEWAY, make_gateway())
        manager = FinalizerManager(kube)

        await manager.add_finalizers(GATEWAY, obj, FINALIZER)
        await manager.add_finalizers(GATEWAY, obj, FINALIZER)

        assert kube.update_calls == 1
        assert kube.stored(GATEWAY, "default", "lattice-gw")["metadata"]["finalizers"] == [FINALIZER]
        assert obj["metadata"]["resourceVersion"] == kube.stored(GATEWAY, "default", "lattice-gw")["metadata"][
            "resourceVersion"
        ]

    async def test_remove_keeps_other_finalizers(self, kube: FakeKubeClient) -> None:
        obj = kube.add(GATEWAY, make_gateway(finalizers=["other.io/keep", FINALIZER]))
        await FinalizerManager(kube).remove_finalizers(GATEWAY, obj, FINALIZER)
        assert kube.stored(GATEWAY, "default", "lattice-gw")["metadata"]["finalizers"] == ["other.io/keep"]

    async def test_removing_last_finalizer_of_deleted_object_frees_it(self, kube: FakeKubeClient) -> None:
        obj = kube.add(GATEWAY, make_gateway(finalizers=[FINALIZER], deletionTimestamp="2024-01-01T00:00:00Z"))
        await FinalizerManager(kube).remove_finalizers(GATEWAY, obj, FINALIZER)
        assert kube.stored(GATEWAY, "default", "lattice-gw") is None

    async def test_stale_write_is_retried(self, kube: FakeKubeClient) -> None:
        obj = kube.add(GATEWAY, make_gateway())
        kube.stale_updates = 2
        await FinalizerManager(kube).add_finalizers(GATEWAY, obj, FINALIZER)
        assert kube.update_calls == 3
        assert has_finalizer(kube.stored(GATEWAY, "default", "lattice-gw"), FINALIZER)

    async def test_gives_up_after_repeated_conflicts(self, kube: FakeKubeClient) -> None:
        obj = kube.add(GATEWAY, make_gateway())
        kube.stale_updates = 10
        with pytest.raises(StaleObjectError):
            await FinalizerManager(kube).add_finalizers(GATEWAY, obj, FINALIZER)
        assert kube.update_calls == 5


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class TestEventRecorder:
    async def test_event_references_object(self, kube: FakeKubeClient) -> None:
        obj = kube.add(GATEWAY, make_gateway())
        await EventRecorder(kube, "gateway").event(obj, EventType.WARNING, "FailedDeployModel", "boom")

        (event,) = kube.events
        assert event["type"] == "Warning"
        assert event["reason"] == "FailedDeployModel"
        assert event["involvedObject"]["kind"] == "Gateway"
        assert event["involvedObject"]["name"] == "lattice-gw"
        assert event["source"] == {"component": "gateway"}

    async def test_write_failure_is_swallowed(self, kube: FakeKubeClient) -> None:
        class _NoEvents(FakeKubeClient):
            async def create_event(self, namespace, event):  # type: ignore[override]
                raise ConnectionError("api server unreachable")

        recorder = EventRecorder(_NoEvents(), "gateway")
        await recorder.event(make_gateway(), EventType.NORMAL, "Reconcile", "Adding/Updating reconcile")


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class TestConditions:
    def test_unchanged_status_keeps_transition_time(self) -> None:
        old = [Condition("Accepted", "True", "Accepted", last_transition_time="2024-01-01T00:00:00Z").to_dict()]
        merged = get_new_conditions(old, Condition("Accepted", "True", "Accepted", message="again"))
        assert merged[0]["lastTransitionTime"] == "2024-01-01T00:00:00Z"
        assert merged[0]["message"] == "again"

    def test_changed_status_moves_transition_time(self) -> None:
        old = [Condition("Accepted", "True", "Accepted", last_transition_time="2024-01-01T00:00:00Z").to_dict()]
        merged = get_new_conditions(old, Condition("Accepted", "False", "Conflicted"))
        assert merged[0]["lastTransitionTime"] != "2024-01-01T00:00:00Z"

    def test_other_types_are_kept_and_new_types_appended(self) -> None:
        old = [Condition("Accepted", "True", "Accepted").to_dict()]
        merged = get_new_conditions(old, Condition("Programmed", "True", "Programmed"))
        assert [c["type"] for c in merged] == ["Accepted", "Programmed"]


class TestKubeObject:
    def test_accessors(self) -> None:
        obj = KubeObject(make_gateway(generation=4))
        assert obj.namespaced_name == NamespacedName("default", "lattice-gw")
        assert obj.generation == 4
        assert obj.deletion_timestamp is None
        assert obj.finalizers == []

    def test_set_condition_stamps_generation(self) -> None:
        obj = KubeObject(make_gateway(generation=2))
        obj.set_condition(
            Condition(ConditionType.PROGRAMMED, ConditionStatus.TRUE, "Programmed", observed_generation=2)
        )
        (cond,) = obj.conditions()
        assert cond["observedGeneration"] == 2

    def test_refresh_metadata_takes_stored_version(self) -> None:
        obj = KubeObject(make_gateway())
        obj.refresh_metadata({"metadata": {"name": "lattice-gw", "resourceVersion": "9"}})
        assert obj.k8s_object["metadata"]["resourceVersion"] == "9"
