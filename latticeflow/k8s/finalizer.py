"""Finalizer add/remove with conflict retry."""

from __future__ import annotations

from typing import Any

import structlog

from latticeflow.k8s.client import KubeClient, StaleObjectError
from latticeflow.models.k8s import ObjectType

_log = structlog.get_logger(component="k8s.finalizer")

_MAX_ATTEMPTS = 5


def has_finalizer(obj: dict[str, Any], finalizer: str) -> bool:
    return finalizer in ((obj.get("metadata") or {}).get("finalizers") or [])


class FinalizerManager:
    """Adds and removes finalizer tokens on cluster objects.

    Both operations are idempotent. A stale write re-reads the object and
    tries again, up to ``_MAX_ATTEMPTS`` times, after which the last
    StaleObjectError propagates. On success the caller's dict receives the
    stored metadata so later conditional writes use the new resourceVersion.
    """

    def __init__(self, client: KubeClient) -> None:
        self._client = client

    async def add_finalizers(self, object_type: ObjectType, obj: dict[str, Any], *finalizers: str) -> None:
        await self._mutate(object_type, obj, add=finalizers)

    async def remove_finalizers(self, object_type: ObjectType, obj: dict[str, Any], *finalizers: str) -> None:
        await self._mutate(object_type, obj, remove=finalizers)

    async def _mutate(
        self,
        object_type: ObjectType,
        obj: dict[str, Any],
        add: tuple[str, ...] = (),
        remove: tuple[str, ...] = (),
    ) -> None:
        meta = obj.get("metadata") or {}
        namespace, name = meta.get("namespace", ""), meta.get("name", "")
        current = obj
        last_exc: StaleObjectError | None = None

        for attempt in range(_MAX_ATTEMPTS):
            if attempt:
                current = await self._client.get(object_type, namespace, name)
            existing = list((current.get("metadata") or {}).get("finalizers") or [])
            wanted = [f for f in existing if f not in remove]
            wanted.extend(f for f in add if f not in wanted)
            if wanted == existing:
                obj["metadata"] = current["metadata"]
                return

            candidate = dict(current)
            candidate["metadata"] = {**current["metadata"], "finalizers": wanted}
            try:
                stored = await self._client.update(object_type, candidate)
            except StaleObjectError as exc:
                last_exc = exc
                _log.debug("finalizer_update_conflict", kind=object_type.kind, name=name, attempt=attempt + 1)
                continue
            obj["metadata"] = stored["metadata"]
            return

        assert last_exc is not None
        raise last_exc
