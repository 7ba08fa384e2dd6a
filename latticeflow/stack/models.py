"""Data structures for the resource dependency graph."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

_RESOURCE_KINDS: dict[str, type[Resource]] = {}


@dataclass(frozen=True)
class ResourceUID:
    """Unique key of a resource inside one stack."""

    kind: str
    id: str

    def __str__(self) -> str:
        return f"{self.kind}/{self.id}"


@dataclass(frozen=True)
class StackID:
    """Namespaced name of the source object a stack was built from."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class Resource:
    """A typed descriptor of one desired remote resource.

    ``kind`` is declared by every concrete subclass and acts as the
    discriminator for stack lookups. Subclasses register on definition so a
    kind string always maps back to exactly one class.
    """

    kind: ClassVar[str] = ""

    id: str

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        kind = cls.__dict__.get("kind")
        if not kind:
            return
        existing = _RESOURCE_KINDS.get(kind)
        if existing is not None and existing.__qualname__ != cls.__qualname__:
            raise TypeError(f"resource kind {kind!r} already registered by {existing.__qualname__}")
        _RESOURCE_KINDS[kind] = cls

    @property
    def uid(self) -> ResourceUID:
        return ResourceUID(kind=self.kind, id=self.id)

    def logical_key(self) -> str:
        """Stable name of the logical resource this descriptor realises.

        Two descriptors with different ids but the same logical key are
        successive versions of one remote resource. The default is unique per
        descriptor; subclasses override it with a field that survives a
        change of id.
        """
        return str(self.uid)

    def remote_id(self) -> str:
        """Identifier recorded on the source object once deployed."""
        return self.id


def resource_kind(kind: str | type[Resource]) -> str:
    """Normalise a kind given either as a string or as a Resource subclass."""
    if isinstance(kind, str):
        return kind
    if not kind.kind:
        raise TypeError(f"{kind.__qualname__} does not declare a resource kind")
    return kind.kind
