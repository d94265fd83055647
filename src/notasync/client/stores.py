"""Local domain stores.

Each sync domain is backed by a store exposing `load()` and `save(payload)`.
The payload is the complete JSON-ready snapshot of the domain, which is
exactly what goes into the remote envelope.

This module provides:
- LocalDomainStore: Protocol consumed by the domain sync units
- CollectionStore: Entity list in the records table (tasks, folders)
- SettingValueStore: A single JSON setting (task sections)
- SettingsStore: User settings, minus engine and domain-owned keys
- ActivityLogStore: Append-only activity entries
- MediaIndexStore: Index of locally stored media references
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

from notasync.core.envelope import format_timestamp, utc_now

if TYPE_CHECKING:
    from notasync.client.state import LocalSyncState

logger = logging.getLogger(__name__)

SECTIONS_KEY = "todo_sections"
ACTIVITY_LOG_KEY = "userActivityLog"
MEDIA_INDEX_KEY = "media_index"

# Settings never exchanged by the settings domain
EXCLUDED_SETTING_PREFIXES = ("sync_", "device_", "google_")
DOMAIN_OWNED_SETTINGS = frozenset({SECTIONS_KEY, ACTIVITY_LOG_KEY, MEDIA_INDEX_KEY})

MEDIA_KINDS = ("images", "audio")


class LocalDomainStore(Protocol):
    """Local load/save pair of one sync domain."""

    def load(self) -> Any:
        """Load the complete local snapshot."""
        ...

    def save(self, payload: Any) -> None:
        """Replace the local snapshot with `payload`."""
        ...


ChangeCallback = Callable[[], None]


class CollectionStore:
    """Ordered entity collection stored one row per entity."""

    def __init__(self, state: LocalSyncState, collection: str) -> None:
        self._state = state
        self._collection = collection

    @property
    def collection(self) -> str:
        return self._collection

    def load(self) -> list[dict[str, Any]]:
        return self._state.load_collection(self._collection)

    def save(self, payload: list[dict[str, Any]]) -> None:
        self._state.replace_collection(self._collection, list(payload))


class SettingValueStore:
    """A single setting holding the whole domain payload."""

    def __init__(self, state: LocalSyncState, key: str, default: Any) -> None:
        self._state = state
        self._key = key
        self._default = default

    def load(self) -> Any:
        return self._state.get_setting(self._key, self._default)

    def save(self, payload: Any) -> None:
        self._state.set_setting(self._key, payload)


def is_syncable_setting(key: str) -> bool:
    """Check whether a setting belongs to the settings domain."""
    if key in DOMAIN_OWNED_SETTINGS:
        return False
    return not key.startswith(EXCLUDED_SETTING_PREFIXES)


class SettingsStore:
    """User settings exchanged as one key/value object.

    Saving writes each received key; keys missing from the payload are
    kept, so a remote copy never deletes a local-only setting.
    """

    def __init__(self, state: LocalSyncState) -> None:
        self._state = state

    def load(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in self._state.get_all_settings().items()
            if is_syncable_setting(key)
        }

    def save(self, payload: dict[str, Any]) -> None:
        for key, value in payload.items():
            if not is_syncable_setting(key):
                logger.debug("Skipping non-syncable setting %s", key)
                continue
            self._state.set_setting(key, value)


class ActivityLogStore:
    """Append-only activity log.

    Entries are dictionaries with at least an "id". Newest entries come
    first. Recording trims the log to `max_entries`; `save` stores a
    snapshot (such as a merged remote log) whole.
    """

    def __init__(
        self,
        state: LocalSyncState,
        max_entries: int = 500,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self._state = state
        self._max_entries = max_entries
        self._on_change = on_change

    def load(self) -> list[dict[str, Any]]:
        entries = self._state.get_setting(ACTIVITY_LOG_KEY, [])
        return entries if isinstance(entries, list) else []

    def save(self, payload: list[dict[str, Any]]) -> None:
        self._state.set_setting(ACTIVITY_LOG_KEY, list(payload))

    def record(self, action: str, **details: Any) -> dict[str, Any]:
        """Append a new activity entry and notify listeners."""
        entry = {
            "id": f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}",
            "action": action,
            "timestamp": format_timestamp(utc_now()),
            **details,
        }
        self.save([entry, *self.load()][: self._max_entries])
        if self._on_change:
            self._on_change()
        return entry


def empty_media_index() -> dict[str, list[str]]:
    return {kind: [] for kind in MEDIA_KINDS}


class MediaIndexStore:
    """Index of media references; the media bytes stay on this device.

    The index is kept as a JSON string setting, as older clients did.
    """

    def __init__(self, state: LocalSyncState, on_change: ChangeCallback | None = None) -> None:
        self._state = state
        self._on_change = on_change

    def load(self) -> dict[str, list[str]]:
        raw = self._state.get_setting(MEDIA_INDEX_KEY, "")
        if not raw:
            return empty_media_index()
        try:
            index = json.loads(raw) if isinstance(raw, str) else raw
        except json.JSONDecodeError as e:
            logger.error("Failed to parse media index: %s", e)
            return empty_media_index()
        if not isinstance(index, dict):
            logger.error("Media index has unexpected type %s", type(index).__name__)
            return empty_media_index()
        return index

    def save(self, payload: dict[str, list[str]]) -> None:
        self._state.set_setting(MEDIA_INDEX_KEY, json.dumps(payload))

    def add(self, kind: str, reference: str) -> bool:
        """Register a media reference. Returns False if already indexed."""
        if kind not in MEDIA_KINDS:
            raise ValueError(f"Unknown media kind '{kind}'")
        index = self.load()
        refs = index.setdefault(kind, [])
        if reference in refs:
            return False
        refs.append(reference)
        self.save(index)
        if self._on_change:
            self._on_change()
        return True

    def remove(self, kind: str, reference: str) -> bool:
        """Drop a media reference. Returns False if it was not indexed."""
        index = self.load()
        refs = index.get(kind, [])
        if reference not in refs:
            return False
        refs.remove(reference)
        self.save(index)
        if self._on_change:
            self._on_change()
        return True
