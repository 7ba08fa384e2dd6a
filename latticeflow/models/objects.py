"""Thin wrapper over a fetched cluster object dict."""

from __future__ import annotations

import copy
from typing import Any

from latticeflow.models.k8s import Condition, NamespacedName, get_new_conditions


class KubeObject:
    """Metadata and status-condition accessors shared by every source kind.

    Reads and writes go straight to the wrapped dict, so the same dict can be
    sent back to the API server after mutation.
    """

    def __init__(self, obj: dict[str, Any]) -> None:
        self._obj = obj
        self._obj.setdefault("metadata", {})
        self._obj.setdefault("spec", {})
        self._obj.setdefault("status", {})

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.namespace}/{self.name})"

    @property
    def name(self) -> str:
        return self._obj["metadata"].get("name", "")

    @property
    def namespace(self) -> str:
        return self._obj["metadata"].get("namespace", "")

    @property
    def namespaced_name(self) -> NamespacedName:
        return NamespacedName(namespace=self.namespace, name=self.name)

    @property
    def generation(self) -> int:
        return int(self._obj["metadata"].get("generation") or 0)

    @property
    def deletion_timestamp(self) -> str | None:
        return self._obj["metadata"].get("deletionTimestamp")

    @property
    def annotations(self) -> dict[str, str]:
        meta = self._obj["metadata"]
        if meta.get("annotations") is None:
            meta["annotations"] = {}
        return meta["annotations"]

    @property
    def finalizers(self) -> list[str]:
        return list(self._obj["metadata"].get("finalizers") or [])

    @property
    def k8s_object(self) -> dict[str, Any]:
        return self._obj

    def refresh_metadata(self, stored: dict[str, Any]) -> None:
        """Adopt the metadata the API server returned after a write."""
        self._obj["metadata"] = stored.get("metadata", self._obj["metadata"])

    def conditions(self) -> list[dict[str, Any]]:
        return list(self._obj["status"].get("conditions") or [])

    def set_condition(self, condition: Condition) -> None:
        self._obj["status"]["conditions"] = get_new_conditions(self.conditions(), condition)

    def deep_copy(self) -> KubeObject:
        clone = copy.copy(self)
        clone._obj = copy.deepcopy(self._obj)
        return clone
