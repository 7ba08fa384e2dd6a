"""Attachment policy reconciler, one instance per policy kind."""

from __future__ import annotations

from typing import Any

from latticeflow.controllers.base import Reconciler, Validation, condition_for
from latticeflow.k8s.client import KubeClient
from latticeflow.models.config import LatticeFlowConfig
from latticeflow.models.k8s import ConditionType
from latticeflow.models.objects import KubeObject
from latticeflow.policy import POLICY_TYPES, Policy, PolicyError, PolicyHandler, PolicyKind


class PolicyReconciler(Reconciler):
    """Validates a policy's target and reports Accepted.

    Kinds without a model builder are status-only and carry no finalizer.
    """

    def __init__(
        self,
        kind: PolicyKind | str,
        client: KubeClient,
        config: LatticeFlowConfig,
        **kwargs: Any,
    ) -> None:
        self.policy_type = POLICY_TYPES[PolicyKind(kind)]
        self.name = str(self.policy_type.kind).lower()
        self.object_type = self.policy_type.object_type
        self.finalizer = self.policy_type.finalizer if kwargs.get("model_builder") is not None else ""
        self.handler = PolicyHandler(self.policy_type, client)
        super().__init__(client, config, **kwargs)

    def wrap(self, obj: dict[str, Any]) -> Policy:
        return Policy(self.policy_type, obj)

    async def validate(self, source: KubeObject) -> Validation:
        assert isinstance(source, Policy)
        try:
            await self.handler.validate_target_ref(source)
        except PolicyError as exc:
            return Validation.failed(exc.reason, str(exc))
        return Validation.accepted()

    async def set_condition(self, source: KubeObject, cond_type: str, reason: str, message: str) -> None:
        assert isinstance(source, Policy)
        if cond_type == ConditionType.ACCEPTED:
            await self.handler.update_accepted_condition(source, reason, message)
            return
        source.set_condition(condition_for(cond_type, reason, message, source.generation))
        await self.write_status(source)
