"""Domain table: how each sync domain is stored, named and restored.

Every SyncDomain variant maps to a DomainSpec holding its remote blob
name, its local store and its restore/merge hooks. `build_domain_table`
refuses to build a table that misses a domain.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from notasync.client.notes import Note
from notasync.client.stores import MEDIA_KINDS, LocalDomainStore
from notasync.client.sync.conflict import merge_by_id
from notasync.core.config import DriveConfig
from notasync.core.envelope import EnvelopeError
from notasync.core.types import SyncDomain

RestoreHook = Callable[[Any], Any]
MergeHook = Callable[[Any, Any], Any]


def restore_list(payload: Any) -> list[Any]:
    if not isinstance(payload, list):
        raise EnvelopeError(f"expected a list payload, got {type(payload).__name__}")
    return payload


def restore_mapping(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise EnvelopeError(f"expected an object payload, got {type(payload).__name__}")
    return payload


def restore_entities(payload: Any) -> list[dict[str, Any]]:
    """Check a list of entities: objects, each with a unique id.

    A payload breaking this is rejected whole rather than stored with
    entries merged or dropped.
    """
    entities = restore_list(payload)
    seen: set[str] = set()
    for index, item in enumerate(entities):
        if not isinstance(item, dict) or item.get("id") is None:
            raise EnvelopeError(f"entry {index} is not an object with an id")
        key = str(item["id"])
        if key in seen:
            raise EnvelopeError(f"duplicate id {item['id']!r}")
        seen.add(key)
    return entities


def restore_notes(payload: Any) -> list[Note]:
    """Rebuild notes, turning timestamp strings back into datetimes."""
    restored = []
    for item in restore_entities(payload):
        try:
            restored.append(Note.from_dict(item))
        except (TypeError, ValueError) as e:
            raise EnvelopeError(f"note {item.get('id')!r} is malformed: {e}") from e
    return restored


def restore_media_index(payload: Any) -> dict[str, list[str]]:
    index = restore_mapping(payload)
    for kind in MEDIA_KINDS:
        refs = index.setdefault(kind, [])
        if not isinstance(refs, list):
            raise EnvelopeError(f"media index '{kind}' must be a list")
    return index


def merge_activity(remote: list[Any], local: list[Any]) -> list[Any]:
    """Activity entries are append-only, so a remote win keeps both sides."""
    return merge_by_id(remote, local)


@dataclass(frozen=True)
class DomainSpec:
    """Everything a sync unit needs to know about one domain."""

    domain: SyncDomain
    blob_name: str
    store: LocalDomainStore
    restore: RestoreHook
    merge: MergeHook | None = None


_RULES: dict[SyncDomain, tuple[RestoreHook, MergeHook | None]] = {
    SyncDomain.NOTES: (restore_notes, None),
    SyncDomain.TASKS: (restore_entities, None),
    SyncDomain.FOLDERS: (restore_entities, None),
    SyncDomain.SECTIONS: (restore_entities, None),
    SyncDomain.SETTINGS: (restore_mapping, None),
    SyncDomain.ACTIVITY: (restore_entities, merge_activity),
    SyncDomain.MEDIA: (restore_media_index, None),
}


def build_domain_table(
    drive: DriveConfig,
    stores: Mapping[SyncDomain, LocalDomainStore],
) -> dict[SyncDomain, DomainSpec]:
    """Build the full domain table.

    Raises:
        ValueError: If a domain has no local store.
    """
    missing = [d.value for d in SyncDomain if d not in stores]
    if missing:
        raise ValueError(f"No local store for domain(s): {', '.join(missing)}")

    table = {}
    for domain in SyncDomain:
        restore, merge = _RULES[domain]
        table[domain] = DomainSpec(
            domain=domain,
            blob_name=drive.blob_name(domain),
            store=stores[domain],
            restore=restore,
            merge=merge,
        )
    return table
