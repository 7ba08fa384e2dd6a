"""Shared fixtures for latticeflow integration tests.

Provides a cluster seeded with one GatewayClass owned by this controller, a
Gateway of that class, one backend Service and one HTTPRoute, so tests can
drive whole reconciles without touching a real API server.
"""

from __future__ import annotations

from typing import Any

import pytest

from latticeflow.models.k8s import HTTP_ROUTE, NamespacedName
from tests.fakes import (
    FakeBuilder,
    FakeCleaner,
    FakeDeployer,
    FakeKubeClient,
    FakeService,
    make_http_route,
    seed_lattice_gateway,
)

ROUTE_KEY = NamespacedName(namespace="default", name="checkout")
GATEWAY_KEY = NamespacedName(namespace="default", name="lattice-gw")


@pytest.fixture()
def cluster(kube: FakeKubeClient) -> FakeKubeClient:
    seed_lattice_gateway(kube)
    kube.add(HTTP_ROUTE, make_http_route())
    return kube


@pytest.fixture()
def builder() -> FakeBuilder:
    return FakeBuilder([FakeService(id="svc-1", name="checkout")])


@pytest.fixture()
def deployer() -> FakeDeployer:
    return FakeDeployer()


@pytest.fixture()
def cleaner() -> FakeCleaner:
    return FakeCleaner()


@pytest.fixture()
def backend(builder: FakeBuilder, deployer: FakeDeployer, cleaner: FakeCleaner) -> dict[str, Any]:
    return {"model_builder": builder, "deployer": deployer, "cleaner": cleaner}


def parent_condition(obj: dict[str, Any] | None, cond_type: str, index: int = 0) -> dict[str, Any]:
    """Condition *cond_type* of the *index*-th parent status entry of a stored route."""
    assert obj is not None
    for cond in obj["status"]["parents"][index]["conditions"]:
        if cond["type"] == cond_type:
            return cond
    raise AssertionError(f"no {cond_type} condition on parent {index}")
