"""Content-addressed identity for desired resources.

``id_from_hash`` is persisted on source objects and compared across
reconciles, so the canonical encoding below must never change: sorted keys,
compact separators, UTF-8 without ASCII escaping.
"""

from __future__ import annotations

import dataclasses
import enum
import hashlib
import json
from collections.abc import Mapping
from typing import Any

ID_PREFIX = "id-"


def _to_plain(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, enum.Enum):
        return _to_plain(value.value)
    if isinstance(value, Mapping):
        return {str(k): _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_to_plain(v) for v in value)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    raise TypeError(f"cannot canonicalise value of type {type(value).__name__}")


def canonical_json(obj: Any) -> bytes:
    """Encode *obj* deterministically."""
    return json.dumps(
        _to_plain(obj),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")


def id_from_hash(obj: Any) -> str:
    """Return ``"id-" + lowercase hex sha256`` of the canonical encoding of *obj*."""
    digest = hashlib.sha256(canonical_json(obj)).hexdigest()
    return f"{ID_PREFIX}{digest}"
