"""Deployment contracts and remote-identity bookkeeping."""

from latticeflow.deploy.base import (
    MissingSynthesizerError,
    ModelBuilder,
    RemoteBackend,
    RemoteIdentity,
    ResourceCleaner,
    ResourceSynthesizer,
    StackDeployer,
    TopologicalStackDeployer,
)
from latticeflow.deploy.identity import (
    IDENTITY_ANNOTATION,
    collect_identities,
    dump_identities,
    load_identities,
    stale_identities,
)

__all__ = [
    "IDENTITY_ANNOTATION",
    "MissingSynthesizerError",
    "ModelBuilder",
    "RemoteBackend",
    "RemoteIdentity",
    "ResourceCleaner",
    "ResourceSynthesizer",
    "StackDeployer",
    "TopologicalStackDeployer",
    "collect_identities",
    "dump_identities",
    "load_identities",
    "stale_identities",
]
