"""Async access to cluster objects.

Controllers talk to the API server only through ``KubeClient``. Objects are
plain camelCase dicts; writes are conditional on ``metadata.resourceVersion``
and a lost race surfaces as ``StaleObjectError`` so the whole reconcile is
retried from a fresh read.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any

import structlog
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from latticeflow.models.k8s import ObjectType

_log = structlog.get_logger(component="k8s.client")


class KubeError(Exception):
    """Base class for errors raised by a KubeClient."""


class NotFoundError(KubeError):
    def __init__(self, kind: str, namespace: str, name: str) -> None:
        super().__init__(f"{kind} {namespace}/{name} not found" if namespace else f"{kind} {name} not found")
        self.kind = kind
        self.namespace = namespace
        self.name = name


class NoKindMatchError(KubeError):
    """The kind is not served by the cluster (its CRD is not installed)."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"no matches for kind {kind!r}")
        self.kind = kind


class StaleObjectError(KubeError):
    """A conditional write lost against a concurrent change."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        super().__init__(f"{kind} {namespace}/{name} was modified concurrently")
        self.kind = kind
        self.namespace = namespace
        self.name = name


class KubeClient(ABC):
    """The subset of the API server the controllers use."""

    @abstractmethod
    async def get(self, object_type: ObjectType, namespace: str, name: str) -> dict[str, Any]:
        """Return one object or raise NotFoundError."""

    @abstractmethod
    async def list(self, object_type: ObjectType, namespace: str | None = None) -> list[dict[str, Any]]:
        """List objects, across all namespaces when *namespace* is None.

        Raises NoKindMatchError when the kind is not installed.
        """

    @abstractmethod
    async def update(self, object_type: ObjectType, obj: dict[str, Any]) -> dict[str, Any]:
        """Replace metadata and spec of *obj*; returns the stored object."""

    @abstractmethod
    async def update_status(self, object_type: ObjectType, obj: dict[str, Any]) -> dict[str, Any]:
        """Replace the status subresource of *obj*; returns the stored object."""

    @abstractmethod
    async def create_event(self, namespace: str, event: dict[str, Any]) -> None:
        """Record a core/v1 Event."""


def _snake(kind: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", kind).lower()


class ApiKubeClient(KubeClient):
    """KubeClient backed by kubernetes_asyncio.

    Custom resources go through CustomObjectsApi; core kinds through
    CoreV1Api, serialised back to camelCase dicts.
    """

    def __init__(self, api_client: k8s_client.ApiClient | None = None) -> None:
        self._api_client = api_client or k8s_client.ApiClient()
        self._custom = k8s_client.CustomObjectsApi(self._api_client)
        self._core = k8s_client.CoreV1Api(self._api_client)

    async def close(self) -> None:
        await self._api_client.close()

    def _to_dict(self, object_type: ObjectType, obj: Any) -> dict[str, Any]:
        data: dict[str, Any] = self._api_client.sanitize_for_serialization(obj)
        data.setdefault("apiVersion", object_type.api_version)
        data.setdefault("kind", object_type.kind)
        return data

    @staticmethod
    def _meta(obj: dict[str, Any]) -> tuple[str, str]:
        meta = obj.get("metadata") or {}
        return meta.get("namespace", ""), meta.get("name", "")

    async def get(self, object_type: ObjectType, namespace: str, name: str) -> dict[str, Any]:
        try:
            if object_type.group:
                if object_type.namespaced:
                    return await self._custom.get_namespaced_custom_object(
                        group=object_type.group,
                        version=object_type.version,
                        namespace=namespace,
                        plural=object_type.plural,
                        name=name,
                    )
                return await self._custom.get_cluster_custom_object(
                    group=object_type.group,
                    version=object_type.version,
                    plural=object_type.plural,
                    name=name,
                )
            read = getattr(self._core, f"read_namespaced_{_snake(object_type.kind)}")
            return self._to_dict(object_type, await read(name=name, namespace=namespace))
        except ApiException as exc:
            if exc.status == 404:
                raise NotFoundError(object_type.kind, namespace, name) from exc
            raise

    async def list(self, object_type: ObjectType, namespace: str | None = None) -> list[dict[str, Any]]:
        try:
            if object_type.group:
                if namespace and object_type.namespaced:
                    response = await self._custom.list_namespaced_custom_object(
                        group=object_type.group,
                        version=object_type.version,
                        namespace=namespace,
                        plural=object_type.plural,
                    )
                else:
                    response = await self._custom.list_cluster_custom_object(
                        group=object_type.group,
                        version=object_type.version,
                        plural=object_type.plural,
                    )
                items = response.get("items", [])
                for item in items:
                    item.setdefault("apiVersion", object_type.api_version)
                    item.setdefault("kind", object_type.kind)
                return items
            snake = _snake(object_type.kind)
            if namespace:
                response = await getattr(self._core, f"list_namespaced_{snake}")(namespace=namespace)
            else:
                response = await getattr(self._core, f"list_{snake}_for_all_namespaces")()
            return [self._to_dict(object_type, item) for item in response.items]
        except ApiException as exc:
            if exc.status == 404:
                raise NoKindMatchError(object_type.kind) from exc
            raise

    async def update(self, object_type: ObjectType, obj: dict[str, Any]) -> dict[str, Any]:
        return await self._replace(object_type, obj, status=False)

    async def update_status(self, object_type: ObjectType, obj: dict[str, Any]) -> dict[str, Any]:
        return await self._replace(object_type, obj, status=True)

    async def _replace(self, object_type: ObjectType, obj: dict[str, Any], *, status: bool) -> dict[str, Any]:
        namespace, name = self._meta(obj)
        suffix = "_status" if status else ""
        try:
            if object_type.group:
                scope = "namespaced" if object_type.namespaced else "cluster"
                replace = getattr(self._custom, f"replace_{scope}_custom_object{suffix}")
                kwargs: dict[str, Any] = {
                    "group": object_type.group,
                    "version": object_type.version,
                    "plural": object_type.plural,
                    "name": name,
                    "body": obj,
                }
                if object_type.namespaced:
                    kwargs["namespace"] = namespace
                return await replace(**kwargs)
            replace = getattr(self._core, f"replace_namespaced_{_snake(object_type.kind)}{suffix}")
            stored = await replace(name=name, namespace=namespace, body=obj)
            return self._to_dict(object_type, stored)
        except ApiException as exc:
            if exc.status == 409:
                raise StaleObjectError(object_type.kind, namespace, name) from exc
            if exc.status == 404:
                raise NotFoundError(object_type.kind, namespace, name) from exc
            raise

    async def create_event(self, namespace: str, event: dict[str, Any]) -> None:
        await self._core.create_namespaced_event(namespace=namespace, body=event)
