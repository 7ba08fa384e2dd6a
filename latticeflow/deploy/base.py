"""Contracts for the collaborators that turn a source object into remote state.

Concrete model builders and remote clients live outside this package; the
reconcilers only depend on these interfaces.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

import structlog

from latticeflow.stack import Resource, Stack, StackError

_log = structlog.get_logger(component="deploy")


@dataclass(frozen=True)
class RemoteIdentity:
    """Where one deployed resource lives on the remote side."""

    kind: str
    id: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "id": self.id}


class ModelBuilder(ABC):
    @abstractmethod
    async def build(self, source: Any, *, deleting: bool) -> Stack:
        """Build the desired-state stack for *source*.

        With ``deleting=True`` the stack describes the tear-down of
        everything *source* owns.
        """


class StackDeployer(ABC):
    @abstractmethod
    async def deploy(self, stack: Stack) -> None:
        """Apply *stack* in topological order.

        Raises RemoteConflictError, RemoteNotFoundError, RemoteInvalidError or
        RetryableError for classified outcomes; anything else is a hard
        failure.
        """


class ResourceCleaner(ABC):
    @abstractmethod
    async def delete(self, identity: RemoteIdentity) -> None:
        """Delete one previously owned remote resource.

        Raises RemoteNotFoundError if it is already gone.
        """


class ResourceSynthesizer(ABC):
    """Applies every resource of one kind."""

    resource_kind: ClassVar[str]

    @abstractmethod
    async def synthesize(self, resource: Resource) -> None:
        """Create or update *resource* remotely."""

    async def post_synthesize(self, stack: Stack) -> None:
        """Hook run after every resource in *stack* has been synthesized."""


class MissingSynthesizerError(StackError):
    def __init__(self, kind: str) -> None:
        super().__init__(f"no synthesizer registered for resource kind {kind!r}")
        self.kind = kind


class TopologicalStackDeployer(StackDeployer):
    """Deploys a stack by dispatching each resource to its kind's synthesizer.

    Resources are visited in ``Stack.topological_order()``; the first failure
    stops the walk. Post-synthesize hooks then run in reverse registration
    order, so dependers clean up before the dependees they rely on.
    """

    def __init__(self, synthesizers: list[ResourceSynthesizer]) -> None:
        self._synthesizers: dict[str, ResourceSynthesizer] = {}
        for synth in synthesizers:
            if synth.resource_kind in self._synthesizers:
                raise ValueError(f"duplicate synthesizer for kind {synth.resource_kind!r}")
            self._synthesizers[synth.resource_kind] = synth

    async def deploy(self, stack: Stack) -> None:
        order = stack.topological_order()
        for res in order:
            synth = self._synthesizers.get(res.kind)
            if synth is None:
                raise MissingSynthesizerError(res.kind)
            await synth.synthesize(res)
        for synth in reversed(list(self._synthesizers.values())):
            await synth.post_synthesize(stack)
        _log.debug("stack_deployed", stack=str(stack.stack_id), resources=len(order))


@dataclass(frozen=True)
class RemoteBackend:
    """The collaborators one source kind needs to manage remote state."""

    model_builder: ModelBuilder
    deployer: StackDeployer
    cleaner: ResourceCleaner

    def as_kwargs(self) -> dict[str, Any]:
        return {
            "model_builder": self.model_builder,
            "deployer": self.deployer,
            "cleaner": self.cleaner,
        }
