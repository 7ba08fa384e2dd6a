"""Reconcile state machine shared by every source kind.

One reconcile walks:

    fetch -> (deleting | upsert) -> validate -> build -> deploy
          -> identities -> status -> done

Subclasses pick the object kind, decide which objects they own, validate
them and write kind-specific status. Everything between validation and
status, including finalizers, drift cleanup and events, lives here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, ClassVar

import structlog

from latticeflow.deploy.base import ModelBuilder, RemoteIdentity, ResourceCleaner, StackDeployer
from latticeflow.deploy.identity import (
    IDENTITY_ANNOTATION,
    collect_identities,
    dump_identities,
    load_identities,
    stale_identities,
)
from latticeflow.k8s.client import KubeClient, NoKindMatchError, NotFoundError
from latticeflow.k8s.events import (
    REASON_DEPLOY_SUCCEED,
    REASON_FAILED_ADD_FINALIZER,
    REASON_FAILED_BUILD_MODEL,
    REASON_FAILED_CLEANUP,
    REASON_FAILED_DEPLOY_MODEL,
    REASON_RECONCILE,
    REASON_RETRY_RECONCILE,
    EventRecorder,
    EventType,
)
from latticeflow.k8s.finalizer import FinalizerManager
from latticeflow.models.config import LatticeFlowConfig
from latticeflow.models.k8s import (
    Condition,
    ConditionReason,
    ConditionStatus,
    ConditionType,
    NamespacedName,
    ObjectType,
)
from latticeflow.models.objects import KubeObject
from latticeflow.observability.metrics import drift_cleanups_total
from latticeflow.runtime.errors import (
    RemoteConflictError,
    RemoteInvalidError,
    RemoteNotFoundError,
    RetryableError,
)
from latticeflow.runtime.reconcile import DONE, ReconcileResult, handle_reconcile_error
from latticeflow.stack import Stack, marshal_stack

_log = structlog.get_logger(component="controllers")

_TRUE_REASONS = frozenset(
    {ConditionReason.ACCEPTED, ConditionReason.RESOLVED_REFS, ConditionReason.PROGRAMMED}
)


def condition_for(
    cond_type: str,
    reason: str,
    message: str = "",
    generation: int = 0,
) -> Condition:
    """Build a condition whose status follows from its reason."""
    status = ConditionStatus.TRUE if reason in _TRUE_REASONS else ConditionStatus.FALSE
    return Condition(
        type=cond_type,
        status=status,
        reason=reason,
        message=message,
        observed_generation=generation,
    )


@dataclass(frozen=True)
class Validation:
    ok: bool
    reason: str = ConditionReason.ACCEPTED
    message: str = ""

    @classmethod
    def accepted(cls, message: str = "") -> Validation:
        return cls(ok=True, reason=ConditionReason.ACCEPTED, message=message)

    @classmethod
    def failed(cls, reason: str, message: str) -> Validation:
        return cls(ok=False, reason=reason, message=message)


class Reconciler(ABC):
    """Drives one source kind from desired state to remote state.

    ``model_builder``, ``deployer`` and ``cleaner`` are optional together:
    without them the reconciler only validates and writes status.
    """

    name: str = ""
    object_type: ObjectType
    finalizer: str = ""
    # None tracks identities of every kind in the deployed stack
    tracked_kinds: ClassVar[tuple[str, ...] | None] = None

    def __init__(
        self,
        client: KubeClient,
        config: LatticeFlowConfig,
        *,
        model_builder: ModelBuilder | None = None,
        deployer: StackDeployer | None = None,
        cleaner: ResourceCleaner | None = None,
    ) -> None:
        if model_builder is not None and (deployer is None or cleaner is None):
            raise ValueError(f"{self.name}: a model builder needs both a deployer and a cleaner")
        self.client = client
        self.config = config
        self.model_builder = model_builder
        self.deployer = deployer
        self.cleaner = cleaner
        self.finalizers = FinalizerManager(client)
        self.events = EventRecorder(client, component=config.controller_name)

    @property
    def manages_remote_state(self) -> bool:
        return self.model_builder is not None

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def wrap(self, obj: dict[str, Any]) -> KubeObject:
        """Wrap a fetched object of this reconciler's kind."""

    async def is_relevant(self, source: KubeObject) -> bool:
        return True

    async def validate(self, source: KubeObject) -> Validation:
        return Validation.accepted()

    async def before_delete(self, source: KubeObject) -> None:
        """Raise to refuse deletion for now; the finalizer is kept."""

    @abstractmethod
    async def set_condition(self, source: KubeObject, cond_type: str, reason: str, message: str) -> None:
        """Record one status condition on *source* and write status."""

    async def report_validation(self, source: KubeObject, validation: Validation) -> None:
        if not validation.ok:
            await self.set_condition(source, ConditionType.ACCEPTED, validation.reason, validation.message)

    async def report_rejected(self, source: KubeObject, reason: str, message: str) -> None:
        await self.set_condition(source, ConditionType.ACCEPTED, reason, message)

    async def report_deployed(self, source: KubeObject, stack: Stack | None) -> None:
        await self.set_condition(source, ConditionType.ACCEPTED, ConditionReason.ACCEPTED, "")

    async def report_retry(self, source: KubeObject, exc: Exception) -> None:
        """Hook run when a deploy will be retried after the fixed delay."""

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def reconcile(self, key: NamespacedName) -> ReconcileResult:
        try:
            await self._reconcile(key)
        except Exception as exc:
            return handle_reconcile_error(exc, self.config.reconcile.retry_delay_seconds)
        return DONE

    async def list_keys(self) -> list[NamespacedName]:
        """Keys of every object of this kind, for periodic resync."""
        try:
            items = await self.client.list(self.object_type)
        except NoKindMatchError:
            _log.debug("kind_not_installed", kind=self.object_type.kind)
            return []
        return [NamespacedName.of(item) for item in items]

    async def write_status(self, source: KubeObject) -> None:
        stored = await self.client.update_status(self.object_type, source.k8s_object)
        source.refresh_metadata(stored)

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    async def _reconcile(self, key: NamespacedName) -> None:
        try:
            obj = await self.client.get(self.object_type, key.namespace, key.name)
        except NotFoundError:
            _log.debug("reconcile_object_gone")
            return
        obj.setdefault("apiVersion", self.object_type.api_version)
        obj.setdefault("kind", self.object_type.kind)
        source = self.wrap(obj)

        if not await self.is_relevant(source):
            _log.debug("reconcile_skipped_not_owned")
            return

        if source.deletion_timestamp:
            await self._reconcile_delete(source)
        else:
            await self._reconcile_upsert(source)

    async def _reconcile_delete(self, source: KubeObject) -> None:
        if self.finalizer and self.finalizer not in source.finalizers:
            _log.debug("reconcile_delete_nothing_owned")
            return
        await self.events.event(source.k8s_object, EventType.NORMAL, REASON_RECONCILE, "Deleting Reconcile")
        await self.before_delete(source)

        if self.manages_remote_state:
            stack = await self._build(source, deleting=True)
            assert self.deployer is not None
            try:
                await self.deployer.deploy(stack)
            except RemoteNotFoundError:
                _log.info("teardown_target_already_gone")
            except Exception as exc:
                await self.events.event(
                    source.k8s_object,
                    EventType.WARNING,
                    REASON_FAILED_DEPLOY_MODEL,
                    f"Failed tear down: {exc}",
                )
                raise
            await self._cleanup(source, load_identities(source.annotations).values())

        if self.finalizer:
            await self.finalizers.remove_finalizers(self.object_type, source.k8s_object, self.finalizer)
        _log.info("reconcile_deleted")

    async def _reconcile_upsert(self, source: KubeObject) -> None:
        await self.events.event(
            source.k8s_object, EventType.NORMAL, REASON_RECONCILE, "Adding/Updating Reconcile"
        )
        if self.finalizer:
            try:
                await self.finalizers.add_finalizers(self.object_type, source.k8s_object, self.finalizer)
            except Exception as exc:
                await self.events.event(
                    source.k8s_object,
                    EventType.WARNING,
                    REASON_FAILED_ADD_FINALIZER,
                    f"Failed adding finalizer: {exc}",
                )
                raise

        validation = await self.validate(source)
        await self.report_validation(source, validation)
        if not validation.ok:
            _log.info("reconcile_validation_failed", reason=validation.reason, message=validation.message)
            return

        if not self.manages_remote_state:
            await self.report_deployed(source, None)
            return

        stack = await self._build(source, deleting=False)
        try:
            await self._deploy(source, stack)
        except RemoteConflictError as exc:
            await self._reject(source, ConditionReason.CONFLICTED, str(exc))
            return
        except RemoteInvalidError as exc:
            await self._reject(source, ConditionReason.INVALID, str(exc))
            return

        await self._persist_identities(source, stack)
        await self.report_deployed(source, stack)
        await self.events.event(
            source.k8s_object, EventType.NORMAL, REASON_DEPLOY_SUCCEED, "Adding/Updating reconcile Done!"
        )
        _log.info("reconcile_deployed", resources=len(stack))

    async def _build(self, source: KubeObject, *, deleting: bool) -> Stack:
        assert self.model_builder is not None
        try:
            stack = await self.model_builder.build(source, deleting=deleting)
        except Exception as exc:
            await self.events.event(
                source.k8s_object, EventType.WARNING, REASON_FAILED_BUILD_MODEL, f"Failed build model: {exc}"
            )
            raise
        _log.debug("model_built", deleting=deleting, stack=marshal_stack(stack))
        return stack

    async def _deploy(self, source: KubeObject, stack: Stack) -> None:
        assert self.deployer is not None
        try:
            await self.deployer.deploy(stack)
        except (RemoteConflictError, RemoteInvalidError):
            raise
        except (RetryableError, RemoteNotFoundError) as exc:
            await self.events.event(
                source.k8s_object, EventType.NORMAL, REASON_RETRY_RECONCILE, f"retry reconcile: {exc}"
            )
            await self.report_retry(source, exc)
            raise
        except Exception as exc:
            await self.events.event(
                source.k8s_object, EventType.WARNING, REASON_FAILED_DEPLOY_MODEL, f"Failed deploy model: {exc}"
            )
            raise

    async def _reject(self, source: KubeObject, reason: str, message: str) -> None:
        await self.events.event(source.k8s_object, EventType.WARNING, REASON_FAILED_DEPLOY_MODEL, message)
        await self.report_rejected(source, reason, message)
        _log.info("reconcile_rejected", reason=reason, message=message)

    async def _cleanup(self, source: KubeObject, identities: Iterable[RemoteIdentity]) -> int:
        """Delete each identity remotely; already-gone ones count as done."""
        assert self.cleaner is not None
        deleted = 0
        for identity in identities:
            try:
                await self.cleaner.delete(identity)
            except RemoteNotFoundError:
                _log.debug("remote_resource_already_gone", kind=identity.kind, id=identity.id)
                continue
            except Exception as exc:
                await self.events.event(
                    source.k8s_object,
                    EventType.WARNING,
                    REASON_FAILED_CLEANUP,
                    f"Failed deleting {identity.kind} {identity.id}: {exc}",
                )
                raise
            deleted += 1
        return deleted

    async def _persist_identities(self, source: KubeObject, stack: Stack) -> None:
        kinds = self.tracked_kinds
        if kinds is None:
            kinds = tuple(dict.fromkeys(res.kind for res in stack.resources()))
        old = load_identities(source.annotations)
        new = collect_identities(stack, kinds)

        stale = stale_identities(old, new)
        if stale:
            deleted = await self._cleanup(source, stale)
            drift_cleanups_total.labels(controller=self.name).inc(deleted)
            _log.info("drift_cleaned", stale=len(stale), deleted=deleted)

        if new == old and (new or IDENTITY_ANNOTATION not in source.annotations):
            return
        source.annotations[IDENTITY_ANNOTATION] = dump_identities(new)
        stored = await self.client.update(self.object_type, source.k8s_object)
        source.refresh_metadata(stored)
