"""Policy reconciles: target validation and conflict resolution."""

from __future__ import annotations

from typing import Any

from latticeflow.controllers import PolicyReconciler
from latticeflow.deploy import load_identities
from latticeflow.models.config import LatticeFlowConfig
from latticeflow.models.k8s import GATEWAY_API_GROUP, HTTP_ROUTE, NamespacedName, find_condition
from latticeflow.policy import POLICY_TYPES, PolicyKind
from latticeflow.runtime import DONE
from tests.fakes import FakeBuilder, FakeKubeClient, FakeService, backend_kwargs, make_http_route, make_policy

_IAM = POLICY_TYPES[PolicyKind.IAM_AUTH]
_ROUTE_TARGET = {"group": GATEWAY_API_GROUP, "kind": "HTTPRoute", "name": "checkout"}


def _add(kube: FakeKubeClient, name: str, created: str, target: dict[str, Any] | None = None) -> NamespacedName:
    kube.add(_IAM.object_type, make_policy(PolicyKind.IAM_AUTH, name, target or _ROUTE_TARGET, created=created))
    return NamespacedName(namespace="default", name=name)


def _accepted(kube: FakeKubeClient, name: str) -> dict[str, Any]:
    stored = kube.stored(_IAM.object_type, "default", name)
    assert stored is not None
    cond = find_condition(stored["status"].get("conditions") or [], "Accepted")
    assert cond is not None
    return cond


class TestConflicts:
    async def test_second_policy_on_same_target_is_conflicted(
        self, cluster: FakeKubeClient, config: LatticeFlowConfig
    ) -> None:
        reconciler = PolicyReconciler(PolicyKind.IAM_AUTH, cluster, config)
        first = _add(cluster, "allow-frontend", "2024-01-01T00:00:00+00:00")
        second = _add(cluster, "allow-all", "2024-02-01T00:00:00+00:00")

        assert await reconciler.reconcile(first) == DONE
        assert await reconciler.reconcile(second) == DONE

        assert _accepted(cluster, "allow-frontend")["status"] == "True"
        conflicted = _accepted(cluster, "allow-all")
        assert (conflicted["status"], conflicted["reason"]) == ("False", "Conflicted")
        assert "allow-frontend" in conflicted["message"]

    async def test_accepted_policy_is_not_displaced_by_an_older_one(
        self, cluster: FakeKubeClient, config: LatticeFlowConfig
    ) -> None:
        reconciler = PolicyReconciler(PolicyKind.IAM_AUTH, cluster, config)
        incumbent = _add(cluster, "incumbent", "2024-06-01T00:00:00+00:00")
        await reconciler.reconcile(incumbent)

        late = _add(cluster, "backdated", "2023-01-01T00:00:00+00:00")
        await reconciler.reconcile(late)
        await reconciler.reconcile(incumbent)

        assert _accepted(cluster, "incumbent")["status"] == "True"
        assert _accepted(cluster, "backdated")["reason"] == "Conflicted"

    async def test_retargeted_policy_does_not_keep_stale_acceptance(
        self, cluster: FakeKubeClient, config: LatticeFlowConfig
    ) -> None:
        cluster.add(HTTP_ROUTE, make_http_route(name="inventory"))
        reconciler = PolicyReconciler(PolicyKind.IAM_AUTH, cluster, config)
        old = _add(cluster, "old", "2023-01-01T00:00:00+00:00", target={**_ROUTE_TARGET, "name": "inventory"})
        incumbent = _add(cluster, "incumbent", "2024-01-01T00:00:00+00:00")
        await reconciler.reconcile(old)
        await reconciler.reconcile(incumbent)
        assert _accepted(cluster, "old")["status"] == "True"

        stored = cluster.stored(_IAM.object_type, "default", "old")
        stored["spec"]["targetRef"] = dict(_ROUTE_TARGET)
        stored["metadata"]["generation"] = 2
        await reconciler.reconcile(old)
        await reconciler.reconcile(incumbent)

        moved = _accepted(cluster, "old")
        assert (moved["status"], moved["reason"], moved["observedGeneration"]) == ("False", "Conflicted", 2)
        assert "incumbent" in moved["message"]
        assert _accepted(cluster, "incumbent")["status"] == "True"

    async def test_policies_on_different_targets_do_not_conflict(
        self, cluster: FakeKubeClient, config: LatticeFlowConfig
    ) -> None:
        cluster.add(HTTP_ROUTE, make_http_route(name="inventory"))
        reconciler = PolicyReconciler(PolicyKind.IAM_AUTH, cluster, config)
        a = _add(cluster, "a", "2024-01-01T00:00:00+00:00")
        b = _add(cluster, "b", "2024-02-01T00:00:00+00:00", target={**_ROUTE_TARGET, "name": "inventory"})

        await reconciler.reconcile(a)
        await reconciler.reconcile(b)

        assert _accepted(cluster, "a")["status"] == "True"
        assert _accepted(cluster, "b")["status"] == "True"


class TestTargets:
    async def test_missing_target(self, cluster: FakeKubeClient, config: LatticeFlowConfig) -> None:
        key = _add(cluster, "p", "2024-01-01T00:00:00+00:00", target={**_ROUTE_TARGET, "name": "ghost"})
        await PolicyReconciler(PolicyKind.IAM_AUTH, cluster, config).reconcile(key)
        cond = _accepted(cluster, "p")
        assert (cond["status"], cond["reason"]) == ("False", "TargetNotFound")

    async def test_kind_not_allowed(self, cluster: FakeKubeClient, config: LatticeFlowConfig) -> None:
        key = _add(cluster, "p", "2024-01-01T00:00:00+00:00", target={"group": "", "kind": "Service", "name": "x"})
        await PolicyReconciler(PolicyKind.IAM_AUTH, cluster, config).reconcile(key)
        assert _accepted(cluster, "p")["reason"] == "Invalid"


class TestRemoteState:
    async def test_status_only_policy_has_no_finalizer(
        self, cluster: FakeKubeClient, config: LatticeFlowConfig
    ) -> None:
        key = _add(cluster, "p", "2024-01-01T00:00:00+00:00")
        await PolicyReconciler(PolicyKind.IAM_AUTH, cluster, config).reconcile(key)

        stored = cluster.stored(_IAM.object_type, "default", "p")
        assert not stored["metadata"].get("finalizers")
        assert cluster.update_calls == 0

    async def test_managed_policy_records_identities(
        self, cluster: FakeKubeClient, config: LatticeFlowConfig
    ) -> None:
        builder = FakeBuilder([FakeService(id="auth-1", name="checkout")])
        key = _add(cluster, "p", "2024-01-01T00:00:00+00:00")
        await PolicyReconciler(PolicyKind.IAM_AUTH, cluster, config, **backend_kwargs(builder=builder)).reconcile(key)

        stored = cluster.stored(_IAM.object_type, "default", "p")
        assert stored["metadata"]["finalizers"] == [_IAM.finalizer]
        assert [i.id for i in load_identities(stored["metadata"]["annotations"]).values()] == ["auth-1"]
        assert _accepted(cluster, "p")["status"] == "True"

    async def test_uninstalled_kind_lists_nothing(self, kube: FakeKubeClient, config: LatticeFlowConfig) -> None:
        kube.missing_kinds.add(str(PolicyKind.ACCESS_LOG))
        assert await PolicyReconciler(PolicyKind.ACCESS_LOG, kube, config).list_keys() == []
