"""Attachment policies: model, target kinds and the resolver."""

from latticeflow.policy.kinds import group_kind_to_obj, obj_to_group_kind, supported_group_kinds
from latticeflow.policy.model import POLICY_TYPES, Policy, PolicyKind, PolicyType, policy_type
from latticeflow.policy.resolver import (
    PolicyConflictError,
    PolicyError,
    PolicyGroupKindError,
    PolicyHandler,
    PolicyNamespaceError,
    PolicyTargetNotFoundError,
    TargetRefMissingError,
)

__all__ = [
    "POLICY_TYPES",
    "Policy",
    "PolicyConflictError",
    "PolicyError",
    "PolicyGroupKindError",
    "PolicyHandler",
    "PolicyKind",
    "PolicyNamespaceError",
    "PolicyTargetNotFoundError",
    "PolicyType",
    "TargetRefMissingError",
    "group_kind_to_obj",
    "obj_to_group_kind",
    "policy_type",
    "supported_group_kinds",
]
