"""Target resolution and conflict detection for attachment policies.

At most one policy of a kind may be Accepted for a given target. A policy
that finds another one already Accepted is Conflicted. Acceptance only
counts when it was observed for the policy's current generation, so a
policy retargeted onto a held target does not carry its old acceptance.
When none is Accepted yet, the oldest by (creationTimestamp, namespace,
name) wins, so reconciles that race on first attachment reach the same
answer. The user resolves a conflict by deleting one of the policies;
nothing is arbitrated automatically.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from latticeflow.k8s.client import KubeClient, NoKindMatchError, NotFoundError
from latticeflow.models.k8s import (
    Condition,
    ConditionReason,
    ConditionStatus,
    ConditionType,
    ObjectType,
    TargetRef,
    UnsupportedKindError,
)
from latticeflow.policy.kinds import group_kind_to_obj, obj_to_group_kind
from latticeflow.policy.model import Policy, PolicyType

_log = structlog.get_logger(component="policy.resolver")


class PolicyError(Exception):
    """Base class for target-ref validation failures."""

    reason: ConditionReason = ConditionReason.UNKNOWN


class TargetRefMissingError(PolicyError):
    reason = ConditionReason.INVALID

    def __init__(self, policy: Policy) -> None:
        super().__init__(f"{policy.kind} {policy.namespaced_name} has no targetRef")


class PolicyGroupKindError(PolicyError):
    reason = ConditionReason.INVALID

    def __init__(self, target_ref: TargetRef) -> None:
        super().__init__(f"group/kind error: not supported GroupKind={target_ref.group}/{target_ref.kind}")


class PolicyNamespaceError(PolicyError):
    reason = ConditionReason.INVALID

    def __init__(self, target_ref: TargetRef, namespace: str) -> None:
        super().__init__(f"targetRef namespace {target_ref.namespace} does not match policy namespace {namespace}")


class PolicyTargetNotFoundError(PolicyError):
    reason = ConditionReason.TARGET_NOT_FOUND

    def __init__(self, namespace: str, name: str) -> None:
        super().__init__(f"targetRef not found, target={namespace}/{name}")


class PolicyConflictError(PolicyError):
    reason = ConditionReason.CONFLICTED

    def __init__(self, winner: Policy) -> None:
        super().__init__(f"targetRef has conflict, policy={winner.name}")
        self.winner = winner


class PolicyHandler:
    """Resolver for one policy kind."""

    def __init__(self, ptype: PolicyType, client: KubeClient) -> None:
        self.policy_type = ptype
        self._client = client

    async def get(self, namespace: str, name: str) -> Policy:
        obj = await self._client.get(self.policy_type.object_type, namespace, name)
        return Policy(self.policy_type, obj)

    async def list(self, namespace: str | None = None) -> list[Policy]:
        """Policies of this kind; an uninstalled CRD yields no policies."""
        try:
            items = await self._client.list(self.policy_type.object_type, namespace)
        except NoKindMatchError:
            _log.debug("policy_kind_not_installed", kind=str(self.policy_type.kind))
            return []
        return [Policy(self.policy_type, item) for item in items]

    async def resolve_target(self, policy: Policy, target_type: ObjectType) -> dict[str, Any] | None:
        """Fetch the object *policy* attaches to, if it is a *target_type*.

        Returns None when the policy is not applicable to *target_type* or the
        target does not exist. Any other fetch error propagates.
        """
        target_ref = policy.target_ref
        if target_ref is None:
            raise TargetRefMissingError(policy)
        if target_ref.group_kind != target_type.group_kind:
            return None
        if target_ref.namespace and target_ref.namespace != policy.namespace:
            return None
        try:
            return await self._client.get(target_type, policy.namespace, target_ref.name)
        except NotFoundError:
            _log.info(
                "policy_target_not_found",
                policy=str(policy.namespaced_name),
                kind=target_ref.kind,
                target=target_ref.name,
            )
            return None

    async def find_attached_policies(
        self,
        target: TargetRef,
        condition_reasons: Iterable[str] | None = None,
    ) -> list[Policy]:
        """Policies whose targetRef names *target*.

        *target* must carry its namespace; a ValueError is raised otherwise.
        With *condition_reasons*, only policies whose Accepted reason is one of
        them are kept.
        """
        if not target.namespace:
            raise ValueError(f"target {target.kind}/{target.name} has no namespace")
        namespace = target.namespace
        reasons = set(condition_reasons) if condition_reasons is not None else None
        out: list[Policy] = []
        for policy in await self.list(namespace):
            ref = policy.target_ref
            if ref is None:
                continue
            if ref.group_kind != target.group_kind or ref.name != target.name:
                continue
            if ref.effective_namespace(policy.namespace) != namespace:
                continue
            if reasons is not None and policy.accepted_reason() not in reasons:
                continue
            out.append(policy)
        return out

    async def policies_for_target(self, obj: dict[str, Any]) -> list[Policy]:
        """Policies of this kind attached to the fetched object *obj*."""
        meta = obj.get("metadata") or {}
        gk = obj_to_group_kind(obj)
        target = TargetRef(
            group=gk.group,
            kind=gk.kind,
            name=meta.get("name", ""),
            namespace=meta.get("namespace", ""),
        )
        return await self.find_attached_policies(target)

    async def validate_target_ref(self, policy: Policy) -> None:
        """Raise a PolicyError subclass unless *policy* may be Accepted."""
        target_ref = policy.target_ref
        if target_ref is None:
            raise TargetRefMissingError(policy)
        if target_ref.group_kind not in self.policy_type.target_kinds:
            raise PolicyGroupKindError(target_ref)
        if target_ref.namespace and target_ref.namespace != policy.namespace:
            raise PolicyNamespaceError(target_ref, policy.namespace)
        try:
            target_type = group_kind_to_obj(target_ref.group_kind)
        except UnsupportedKindError:
            raise PolicyGroupKindError(target_ref) from None
        try:
            target = await self._client.get(target_type, policy.namespace, target_ref.name)
        except NotFoundError:
            raise PolicyTargetNotFoundError(policy.namespace, target_ref.name) from None

        winner = self._resolve_winner(policy, await self.policies_for_target(target))
        if winner.namespaced_name != policy.namespaced_name:
            raise PolicyConflictError(winner)

    @staticmethod
    def _resolve_winner(policy: Policy, attached: list[Policy]) -> Policy:
        candidates = [policy, *(p for p in attached if p.namespaced_name != policy.namespaced_name)]
        # a policy accepted for its current generation keeps the target
        accepted = [p for p in candidates if p.holds_target()]
        return min(accepted or candidates, key=Policy.conflict_sort_key)

    async def validate_and_update_condition(self, policy: Policy) -> ConditionReason:
        """Validate *policy* and write the resulting Accepted condition."""
        try:
            await self.validate_target_ref(policy)
        except PolicyError as exc:
            reason, message = exc.reason, str(exc)
        else:
            reason, message = ConditionReason.ACCEPTED, ""
        await self.update_accepted_condition(policy, reason, message)
        return reason

    async def update_accepted_condition(self, policy: Policy, reason: str, message: str) -> None:
        status = ConditionStatus.TRUE if reason == ConditionReason.ACCEPTED else ConditionStatus.FALSE
        policy.set_condition(
            Condition(
                type=ConditionType.ACCEPTED,
                status=status,
                reason=reason,
                message=message,
                observed_generation=policy.generation,
            )
        )
        stored = await self._client.update_status(self.policy_type.object_type, policy.k8s_object)
        policy.refresh_metadata(stored)
