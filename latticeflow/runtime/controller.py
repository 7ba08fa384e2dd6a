"""Per-kind work queue and worker pool.

A Controller owns the queue of object keys for one source kind. A key that
is already waiting is not queued twice; a key enqueued while it is being
reconciled is queued again once the running reconcile finishes, so one key
is never reconciled by two workers at once.

Failures back off exponentially per key (reset on success); explicit
requeue-after results wait exactly the requested delay. A periodic resync
enqueues every object of the kind.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

from latticeflow.models.k8s import NamespacedName
from latticeflow.observability.logging import reconcile_trace
from latticeflow.observability.metrics import (
    reconcile_duration_seconds,
    reconcile_errors_total,
    reconcile_total,
    workqueue_depth,
)
from latticeflow.runtime.errors import ErrorClass, classify_error
from latticeflow.runtime.reconcile import ReconcileResult

_log = structlog.get_logger(component="runtime.controller")

ReconcileFn = Callable[[NamespacedName], Awaitable[ReconcileResult]]
ListKeysFn = Callable[[], Awaitable[list[NamespacedName]]]


class Controller:
    def __init__(
        self,
        name: str,
        reconcile: ReconcileFn,
        list_keys: ListKeysFn | None = None,
        *,
        workers: int = 1,
        timeout_seconds: float = 120.0,
        backoff_base_seconds: float = 0.005,
        backoff_max_seconds: float = 1000.0,
        resync_seconds: float = 600.0,
    ) -> None:
        self.name = name
        self._reconcile = reconcile
        self._list_keys = list_keys
        self._workers = max(1, workers)
        self._timeout = timeout_seconds
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._resync_seconds = resync_seconds

        self._queue: asyncio.Queue[NamespacedName] = asyncio.Queue()
        self._pending: set[NamespacedName] = set()
        self._processing: set[NamespacedName] = set()
        self._dirty: set[NamespacedName] = set()
        self._failures: dict[NamespacedName, int] = {}
        self._timers: set[asyncio.TimerHandle] = set()
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def depth(self) -> int:
        return len(self._pending)

    def failures(self, key: NamespacedName) -> int:
        return self._failures.get(key, 0)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def enqueue(self, key: NamespacedName) -> None:
        if not self._running:
            return
        if key in self._processing:
            self._dirty.add(key)
            return
        if key in self._pending:
            return
        self._pending.add(key)
        self._queue.put_nowait(key)
        workqueue_depth.labels(controller=self.name).set(len(self._pending))

    def enqueue_after(self, key: NamespacedName, delay: float) -> None:
        if delay <= 0:
            self.enqueue(key)
            return
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def _fire() -> None:
            self._timers.discard(handle)
            self.enqueue(key)

        handle = loop.call_later(delay, _fire)
        self._timers.add(handle)

    def backoff_delay(self, key: NamespacedName) -> float:
        """Record one more failure for *key* and return how long to wait."""
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        return min(self._backoff_base * (2**failures), self._backoff_max)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for i in range(self._workers):
            self._tasks.append(asyncio.create_task(self._worker(), name=f"{self.name}-worker-{i}"))
        if self._list_keys is not None:
            self._tasks.append(asyncio.create_task(self._resync_loop(), name=f"{self.name}-resync"))
        _log.info("controller_started", controller=self.name, workers=self._workers)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        _log.info("controller_stopped", controller=self.name)

    async def resync(self) -> None:
        """Enqueue every object of this controller's kind."""
        if self._list_keys is None:
            return
        keys = await self._list_keys()
        for key in keys:
            self.enqueue(key)
        _log.debug("controller_resync", controller=self.name, keys=len(keys))

    async def _resync_loop(self) -> None:
        while True:
            try:
                await self.resync()
            except Exception as exc:
                _log.warning("controller_resync_failed", controller=self.name, error=str(exc))
            await asyncio.sleep(self._resync_seconds)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _worker(self) -> None:
        while True:
            key = await self._queue.get()
            self._pending.discard(key)
            workqueue_depth.labels(controller=self.name).set(len(self._pending))
            self._processing.add(key)
            try:
                await self.process(key)
            finally:
                self._processing.discard(key)
                self._queue.task_done()
                if key in self._dirty:
                    self._dirty.discard(key)
                    self.enqueue(key)

    async def process(self, key: NamespacedName) -> None:
        """Reconcile *key* once and schedule whatever follow-up it needs."""
        started = time.monotonic()
        with reconcile_trace(self.name, key.name, key.namespace):
            try:
                async with asyncio.timeout(self._timeout):
                    result = await self._reconcile(key)
            except Exception as exc:
                error_class = classify_error(exc)
                delay = self.backoff_delay(key)
                reconcile_total.labels(controller=self.name, result="error").inc()
                reconcile_errors_total.labels(controller=self.name, error_class=str(error_class)).inc()
                log_fn = _log.error if error_class in (ErrorClass.STACK, ErrorClass.UNKNOWN) else _log.warning
                log_fn(
                    "reconcile_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    error_class=str(error_class),
                    retry_in=delay,
                )
                self.enqueue_after(key, delay)
                return
            finally:
                reconcile_duration_seconds.labels(controller=self.name).observe(time.monotonic() - started)

        if result.requeue_after > 0:
            self._failures.pop(key, None)
            reconcile_total.labels(controller=self.name, result="requeue").inc()
            self.enqueue_after(key, result.requeue_after)
        elif result.requeue:
            reconcile_total.labels(controller=self.name, result="requeue").inc()
            self.enqueue_after(key, self.backoff_delay(key))
        else:
            self._failures.pop(key, None)
            reconcile_total.labels(controller=self.name, result="success").inc()


class ControllerManager:
    """Starts and stops a set of controllers and reports readiness."""

    def __init__(self, controllers: list[Controller] | None = None) -> None:
        self._controllers: dict[str, Controller] = {}
        for controller in controllers or []:
            self.add(controller)

    def add(self, controller: Controller) -> None:
        if controller.name in self._controllers:
            raise ValueError(f"controller {controller.name!r} already registered")
        self._controllers[controller.name] = controller

    @property
    def controllers(self) -> list[Controller]:
        return list(self._controllers.values())

    def get(self, name: str) -> Controller | None:
        return self._controllers.get(name)

    async def start(self) -> None:
        for controller in self._controllers.values():
            await controller.start()

    async def stop(self) -> None:
        for controller in reversed(self.controllers):
            await controller.stop()

    def ready(self) -> bool:
        return bool(self._controllers) and all(c.running for c in self._controllers.values())

    def status(self) -> dict[str, dict[str, object]]:
        return {c.name: {"running": c.running, "depth": c.depth} for c in self._controllers.values()}
