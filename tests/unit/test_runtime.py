"""Tests for error classification, requeue decisions and the controller queue."""

from __future__ import annotations

import asyncio

import pytest
from prometheus_client import REGISTRY

from latticeflow.k8s.client import NotFoundError, StaleObjectError
from latticeflow.models.k8s import NamespacedName
from latticeflow.runtime import (
    DONE,
    LATTICE_RETRY,
    Controller,
    ControllerManager,
    ErrorClass,
    ReconcileResult,
    RemoteConflictError,
    RemoteInvalidError,
    RemoteNotFoundError,
    RequeueNeeded,
    RequeueNeededAfter,
    RetryableError,
    classify_error,
    handle_reconcile_error,
    new_retry_error,
)
from latticeflow.stack import CycleDetectedError

KEY = NamespacedName(namespace="default", name="checkout")
OTHER = NamespacedName(namespace="default", name="inventory")


async def _done(key: NamespacedName) -> ReconcileResult:
    return DONE


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


def _sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class TestClassifyError:
    @pytest.mark.parametrize(
        ("exc", "expected"),
        [
            (NotFoundError("HTTPRoute", "default", "r"), ErrorClass.NOT_FOUND),
            (RemoteNotFoundError("gone"), ErrorClass.NOT_FOUND),
            (CycleDetectedError(["LatticeService/a"]), ErrorClass.STACK),
            (RemoteInvalidError("bad port"), ErrorClass.INVALID),
            (RemoteConflictError("owned elsewhere"), ErrorClass.CONFLICT),
            (RetryableError(), ErrorClass.RETRYABLE),
            (RequeueNeeded("gateway in use"), ErrorClass.RETRYABLE),
            (RequeueNeededAfter("later", 5.0), ErrorClass.RETRYABLE),
            (StaleObjectError("Gateway", "default", "gw"), ErrorClass.STALE),
            (RuntimeError("boom"), ErrorClass.UNKNOWN),
        ],
    )
    def test_classification(self, exc: Exception, expected: ErrorClass) -> None:
        assert classify_error(exc) == expected

    def test_retryable_default_message(self) -> None:
        assert str(RetryableError()) == LATTICE_RETRY


class TestHandleReconcileError:
    def test_no_error_is_done(self) -> None:
        assert handle_reconcile_error(None) == DONE

    @pytest.mark.parametrize("exc", [RetryableError(), RemoteNotFoundError("listener not ready")])
    def test_retry_signals_wait_the_fixed_delay(self, exc: Exception) -> None:
        assert handle_reconcile_error(exc, retry_delay=20.0) == ReconcileResult(requeue_after=20.0)

    def test_requeue_after_honours_duration(self) -> None:
        assert handle_reconcile_error(new_retry_error()) == ReconcileResult(requeue_after=10.0)

    def test_requeue_goes_through_backoff(self) -> None:
        assert handle_reconcile_error(RequeueNeeded("in use")) == ReconcileResult(requeue=True)

    def test_other_errors_are_reraised(self) -> None:
        with pytest.raises(RemoteConflictError):
            handle_reconcile_error(RemoteConflictError("taken"))


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class TestBackoff:
    def test_doubles_per_failure_and_caps(self) -> None:
        controller = Controller("backoff", _done, backoff_base_seconds=0.005, backoff_max_seconds=0.015)
        delays = [controller.backoff_delay(KEY) for _ in range(4)]
        assert delays == [0.005, 0.01, 0.015, 0.015]
        assert controller.failures(KEY) == 4
        assert controller.failures(OTHER) == 0


class TestProcess:
    async def test_success_resets_failures(self) -> None:
        controller = Controller("process-success", _done)
        controller.backoff_delay(KEY)
        await controller.process(KEY)
        assert controller.failures(KEY) == 0
        assert _sample("latticeflow_reconcile_total", controller="process-success", result="success") == 1.0

    async def test_error_counts_a_failure(self) -> None:
        async def fail(key: NamespacedName) -> ReconcileResult:
            raise RemoteInvalidError("listener port out of range")

        controller = Controller("process-error", fail)
        await controller.process(KEY)
        await controller.process(KEY)
        assert controller.failures(KEY) == 2
        assert (
            _sample("latticeflow_reconcile_errors_total", controller="process-error", error_class="invalid") == 2.0
        )

    async def test_requeue_after_is_not_a_failure(self) -> None:
        async def later(key: NamespacedName) -> ReconcileResult:
            return ReconcileResult(requeue_after=30.0)

        controller = Controller("process-later", later)
        controller.backoff_delay(KEY)
        await controller.process(KEY)
        assert controller.failures(KEY) == 0

    async def test_requeue_uses_backoff(self) -> None:
        async def again(key: NamespacedName) -> ReconcileResult:
            return ReconcileResult(requeue=True)

        controller = Controller("process-requeue", again)
        await controller.process(KEY)
        assert controller.failures(KEY) == 1

    async def test_timeout_is_a_failure(self) -> None:
        async def slow(key: NamespacedName) -> ReconcileResult:
            await asyncio.sleep(5)
            return DONE

        controller = Controller("process-timeout", slow, timeout_seconds=0.01)
        await controller.process(KEY)
        assert controller.failures(KEY) == 1


class TestQueue:
    async def test_enqueue_before_start_is_ignored(self) -> None:
        controller = Controller("queue-idle", _done)
        controller.enqueue(KEY)
        assert controller.depth == 0

    async def test_waiting_key_is_queued_once(self) -> None:
        seen: list[NamespacedName] = []
        gate = asyncio.Event()

        async def reconcile(key: NamespacedName) -> ReconcileResult:
            await gate.wait()
            seen.append(key)
            return DONE

        controller = Controller("queue-dedup", reconcile)
        await controller.start()
        try:
            controller.enqueue(KEY)
            controller.enqueue(KEY)
            controller.enqueue(OTHER)
            assert controller.depth == 2
            gate.set()
            await _wait_until(lambda: len(seen) == 2)
            await asyncio.sleep(0.02)
        finally:
            await controller.stop()
        assert seen == [KEY, OTHER]

    async def test_key_is_never_reconciled_twice_at_once(self) -> None:
        gate = asyncio.Event()
        started = asyncio.Event()
        active = peak = calls = 0

        async def reconcile(key: NamespacedName) -> ReconcileResult:
            nonlocal active, peak, calls
            calls += 1
            active += 1
            peak = max(peak, active)
            started.set()
            await gate.wait()
            active -= 1
            return DONE

        controller = Controller("queue-serial", reconcile, workers=3)
        await controller.start()
        try:
            controller.enqueue(KEY)
            await asyncio.wait_for(started.wait(), 1.0)
            controller.enqueue(KEY)
            assert controller.depth == 0
            gate.set()
            await _wait_until(lambda: calls == 2 and active == 0)
        finally:
            await controller.stop()
        assert peak == 1

    async def test_start_runs_an_initial_resync(self) -> None:
        seen: set[NamespacedName] = set()

        async def reconcile(key: NamespacedName) -> ReconcileResult:
            seen.add(key)
            return DONE

        async def list_keys() -> list[NamespacedName]:
            return [KEY, OTHER]

        controller = Controller("queue-resync", reconcile, list_keys)
        await controller.start()
        try:
            await _wait_until(lambda: seen == {KEY, OTHER})
        finally:
            await controller.stop()
        assert not controller.running

    async def test_failed_key_is_retried_after_backoff(self) -> None:
        attempts = 0

        async def flaky(key: NamespacedName) -> ReconcileResult:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise RuntimeError("transient")
            return DONE

        controller = Controller("queue-retry", flaky, backoff_base_seconds=0.001)
        await controller.start()
        try:
            controller.enqueue(KEY)
            await _wait_until(lambda: attempts == 3 and controller.failures(KEY) == 0)
        finally:
            await controller.stop()


class TestControllerManager:
    def test_duplicate_names_rejected(self) -> None:
        with pytest.raises(ValueError):
            ControllerManager([Controller("dup", _done), Controller("dup", _done)])

    def test_empty_manager_is_not_ready(self) -> None:
        assert not ControllerManager().ready()

    async def test_ready_once_every_controller_runs(self) -> None:
        manager = ControllerManager([Controller("mgr-a", _done), Controller("mgr-b", _done)])
        assert not manager.ready()
        await manager.start()
        try:
            assert manager.ready()
            assert manager.status() == {
                "mgr-a": {"running": True, "depth": 0},
                "mgr-b": {"running": True, "depth": 0},
            }
            assert manager.get("mgr-a") is manager.controllers[0]
        finally:
            await manager.stop()
        assert not manager.ready()
