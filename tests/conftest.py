"""Shared fixtures for latticeflow tests."""

from __future__ import annotations

import pytest

from latticeflow.models.config import LatticeFlowConfig
from tests.fakes import FakeKubeClient, make_config


@pytest.fixture()
def kube() -> FakeKubeClient:
    return FakeKubeClient()


@pytest.fixture()
def config() -> LatticeFlowConfig:
    return make_config()
