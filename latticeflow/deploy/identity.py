"""Remote identities recorded on source objects, for drift cleanup.

After a successful deploy the reconciler stores, in one annotation, a JSON
map from each resource's logical key to the remote identity it was deployed
as. On the next reconcile, an entry whose identity changed or disappeared
names a remote resource this object no longer wants.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping

import structlog

from latticeflow.deploy.base import RemoteIdentity
from latticeflow.stack import DuplicateLogicalKeyError, Stack

_log = structlog.get_logger(component="deploy.identity")

IDENTITY_ANNOTATION = "application-networking.k8s.aws/remote-identities"


def load_identities(annotations: Mapping[str, str]) -> dict[str, RemoteIdentity]:
    """Parse the recorded identities; an unreadable annotation counts as none."""
    raw = annotations.get(IDENTITY_ANNOTATION)
    if not raw:
        return {}
    try:
        data = json.loads(raw)
        return {str(key): RemoteIdentity(kind=entry["kind"], id=entry["id"]) for key, entry in data.items()}
    except (ValueError, TypeError, KeyError, AttributeError) as exc:
        _log.warning("identity_annotation_unreadable", error=str(exc))
        return {}


def dump_identities(identities: Mapping[str, RemoteIdentity]) -> str:
    return json.dumps(
        {key: identities[key].to_dict() for key in sorted(identities)},
        separators=(",", ":"),
        sort_keys=True,
    )


def collect_identities(stack: Stack, kinds: Iterable[str]) -> dict[str, RemoteIdentity]:
    """Identities of every resource in *stack* whose kind is in *kinds*.

    Raises DuplicateLogicalKeyError when two resources share a logical key,
    since only one of them could be tracked for cleanup.
    """
    out: dict[str, RemoteIdentity] = {}
    owners: dict[str, str] = {}
    for kind in kinds:
        for res in stack.list_resources(kind):
            key = res.logical_key()
            if key in owners:
                raise DuplicateLogicalKeyError(key, owners[key], str(res.uid))
            owners[key] = str(res.uid)
            out[key] = RemoteIdentity(kind=res.kind, id=res.remote_id())
    return out


def stale_identities(
    old: Mapping[str, RemoteIdentity],
    new: Mapping[str, RemoteIdentity],
) -> list[RemoteIdentity]:
    """Identities in *old* that *new* replaced or dropped, in key order."""
    stale: list[RemoteIdentity] = []
    current = set(new.values())
    for key in sorted(old):
        identity = old[key]
        if new.get(key) == identity or identity in current:
            continue
        stale.append(identity)
    return stale
