"""Conflict resolution rules.

This module provides:
- Winner: Which side of a conflict is kept
- resolve_conflict: Last-write-wins on whole-domain sync timestamps
- resolve_envelopes: Same rule applied to two envelopes
- merge_by_id: Union of two entry lists deduplicated by id

The conflict key is the coarse per-domain `lastSyncTime`, not per-record
edit times. Edits made to different records on two devices between syncs
are not merged: the losing side's whole snapshot is replaced.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Any

from notasync.core.envelope import SyncEnvelope


class Winner(Enum):
    """Side kept by conflict resolution."""

    LOCAL = "local"
    REMOTE = "remote"


def resolve_conflict(local_time: datetime, remote_time: datetime) -> Winner:
    """Pick the side with the later sync timestamp.

    Local wins only when strictly newer; equal timestamps go to remote.
    """
    if local_time > remote_time:
        return Winner.LOCAL
    return Winner.REMOTE


def resolve_envelopes(
    local: SyncEnvelope[Any],
    remote: SyncEnvelope[Any],
) -> tuple[Winner, Any]:
    """Resolve two envelopes of the same domain.

    Returns:
        (winner, payload of the winning envelope)
    """
    winner = resolve_conflict(local.metadata.last_sync_time, remote.metadata.last_sync_time)
    if winner == Winner.LOCAL:
        return winner, local.data
    return winner, remote.data


def _entry_key(entry: Any) -> str:
    if isinstance(entry, dict) and entry.get("id") is not None:
        return f"id:{entry['id']}"
    return "value:" + json.dumps(entry, sort_keys=True, default=str)


def merge_by_id(remote: Iterable[Any], local: Iterable[Any]) -> list[Any]:
    """Union of remote and local entries, first occurrence of each id kept.

    Remote entries come first, then local entries unknown to remote, each
    in their original order.
    """
    merged: list[Any] = []
    seen: set[str] = set()
    for entry in [*remote, *local]:
        key = _entry_key(entry)
        if key in seen:
            continue
        seen.add(key)
        merged.append(entry)
    return merged
