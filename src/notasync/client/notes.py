"""Local entity store for notes.

This module provides:
- Note: The authoritative note entity
- NoteMeta: Lightweight projection used by list views
- content_preview: Bounded plain-text preview of HTML content
- NotesStore: In-memory collection with dual-path persistence

Durability:
    Every single-note mutation is written to the database immediately.
    The whole collection is also flushed after a quiet window (500ms by
    default) so bursts of edits end up as one collection write. A
    fingerprint of (id, updated_at) pairs skips flushes when nothing
    changed since the last write.

Remote restores go through `save()`, which replaces the collection,
persists it and emits `refreshed` without emitting a local change.
"""

from __future__ import annotations

import asyncio
import html
import logging
import re
import sqlite3
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from notasync.client.signals import Signal
from notasync.core.envelope import format_timestamp, parse_timestamp, utc_now

if TYPE_CHECKING:
    from notasync.client.state import LocalSyncState

logger = logging.getLogger(__name__)

NOTES_COLLECTION = "notes"
DEFAULT_PREVIEW_LENGTH = 200


def _json(name: str, default: Any = None, kind: str | None = None) -> Any:
    return field(default=default, metadata={"json": name, "kind": kind})


def _to_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return parse_timestamp(str(value))


@dataclass
class Note:
    """A note owned by the NotesStore while resident in memory.

    Attributes map to the camelCase JSON used on the wire; keys this
    version does not know about are preserved in `extra`.
    """

    id: str = _json("id", "")
    type: str = _json("type", "regular")
    title: str = _json("title", "")
    content: str = _json("content", "")
    color: str | None = _json("color")
    folder_id: str | None = _json("folderId")
    is_pinned: bool = _json("isPinned", False)
    is_favorite: bool = _json("isFavorite", False)
    pinned_order: int | None = _json("pinnedOrder")
    is_archived: bool = _json("isArchived", False)
    archived_at: datetime | None = _json("archivedAt", kind="datetime")
    is_deleted: bool = _json("isDeleted", False)
    deleted_at: datetime | None = _json("deletedAt", kind="datetime")
    is_hidden: bool = _json("isHidden", False)
    is_protected: bool = _json("isProtected", False)
    meta_description: str | None = _json("metaDescription")
    reminder_enabled: bool = _json("reminderEnabled", False)
    reminder_time: datetime | None = _json("reminderTime", kind="datetime")
    created_at: datetime = _json("createdAt", None, kind="datetime")
    updated_at: datetime = _json("updatedAt", None, kind="datetime")
    voice_recordings: list[dict[str, Any]] = field(
        default_factory=list, metadata={"json": "voiceRecordings", "kind": "recordings"}
    )
    extra: dict[str, Any] = field(default_factory=dict, metadata={"json": None})

    def __post_init__(self) -> None:
        now = utc_now()
        if self.created_at is None:
            self.created_at = now
        if self.updated_at is None:
            self.updated_at = self.created_at

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Note:
        """Create from a JSON dictionary, restoring date values.

        Raises:
            ValueError: If a date field cannot be parsed.
        """
        known: dict[str, Any] = {}
        json_names = set()
        for f in fields(cls):
            json_name = f.metadata.get("json")
            if json_name is None:
                continue
            json_names.add(json_name)
            if json_name not in data:
                continue
            value = data[json_name]
            kind = f.metadata.get("kind")
            if kind == "datetime":
                value = _to_datetime(value)
            elif kind == "recordings":
                value = [
                    {**rec, "timestamp": _to_datetime(rec.get("timestamp"))}
                    for rec in (value or [])
                ]
            known[f.name] = value
        extra = {k: v for k, v in data.items() if k not in json_names}
        return cls(**known, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        result: dict[str, Any] = dict(self.extra)
        for f in fields(self):
            json_name = f.metadata.get("json")
            if json_name is None:
                continue
            value = getattr(self, f.name)
            kind = f.metadata.get("kind")
            if kind == "datetime":
                value = format_timestamp(value) if value is not None else None
            elif kind == "recordings":
                value = [
                    {
                        **rec,
                        "timestamp": (
                            format_timestamp(rec["timestamp"])
                            if isinstance(rec.get("timestamp"), datetime)
                            else rec.get("timestamp")
                        ),
                    }
                    for rec in value
                ]
            result[json_name] = value
        return result


_TAG_RE = re.compile(r"<[^>]*>")
_BLOCK_TAG_RE = re.compile(r"^</?(p|div|br|li|ul|ol|h[1-6]|tr|td|blockquote|pre)\b", re.IGNORECASE)
_SPACE_RE = re.compile(r"\s+")


def _text_chunks(content: str) -> Iterator[str]:
    """Yield text between tags lazily, with a space for block boundaries."""
    pos = 0
    for match in _TAG_RE.finditer(content):
        if match.start() > pos:
            yield content[pos:match.start()]
        if _BLOCK_TAG_RE.match(match.group(0)):
            yield " "
        pos = match.end()
    if pos < len(content):
        yield content[pos:]


def content_preview(content: str | None, limit: int = DEFAULT_PREVIEW_LENGTH) -> str:
    """Extract at most `limit` characters of plain text from HTML content.

    Stops scanning as soon as enough text has been collected, so very
    large notes cost no more than short ones.
    """
    if not content or limit <= 0:
        return ""
    collected: list[str] = []
    length = 0
    for chunk in _text_chunks(content):
        text = _SPACE_RE.sub(" ", html.unescape(chunk))
        if not text:
            continue
        collected.append(text)
        length += len(text)
        if length > limit + 1:
            break
    return _SPACE_RE.sub(" ", "".join(collected)).strip()[:limit]


@dataclass(frozen=True)
class NoteMeta:
    """Derived, non-authoritative projection of a Note for list views."""

    id: str
    type: str
    title: str
    color: str | None
    folder_id: str | None
    is_pinned: bool
    is_favorite: bool
    pinned_order: int | None
    is_archived: bool
    archived_at: datetime | None
    is_deleted: bool
    deleted_at: datetime | None
    is_hidden: bool
    is_protected: bool
    meta_description: str | None
    reminder_enabled: bool
    reminder_time: datetime | None
    created_at: datetime
    updated_at: datetime
    content_preview: str
    has_full_content: bool = True

    @classmethod
    def from_note(cls, note: Note, preview_length: int = DEFAULT_PREVIEW_LENGTH) -> NoteMeta:
        return cls(
            id=note.id,
            type=note.type,
            title=note.title,
            color=note.color,
            folder_id=note.folder_id,
            is_pinned=note.is_pinned,
            is_favorite=note.is_favorite,
            pinned_order=note.pinned_order,
            is_archived=note.is_archived,
            archived_at=note.archived_at,
            is_deleted=note.is_deleted,
            deleted_at=note.deleted_at,
            is_hidden=note.is_hidden,
            is_protected=note.is_protected,
            meta_description=note.meta_description,
            reminder_enabled=note.reminder_enabled,
            reminder_time=note.reminder_time,
            created_at=note.created_at,
            updated_at=note.updated_at,
            content_preview=content_preview(note.content, preview_length),
        )


def _millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def save_fingerprint(notes: Iterable[Note]) -> str:
    """Content-free fingerprint deciding whether a collection flush is needed."""
    return "|".join(f"{n.id}:{_millis(n.updated_at)}" for n in notes)


def meta_fingerprint(notes: Iterable[Note]) -> str:
    """Fingerprint deciding whether the metadata projection must be recomputed."""
    return ",".join(
        f"{n.id}-{_millis(n.updated_at)}-{n.title}-{n.is_pinned}-{n.is_archived}-{n.is_deleted}"
        for n in notes
    )


class NotesStore:
    """Authoritative in-memory note collection.

    Usage:
        store = NotesStore(state, on_change=lambda: signals.notify_changed(SyncDomain.NOTES))
        store.initialize()
        await store.save_note(Note(id="n1", title="Groceries"))
        ...
        await store.close()
    """

    def __init__(
        self,
        state: LocalSyncState,
        debounce_ms: int = 500,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            state: Local database.
            debounce_ms: Quiet window before the full-collection flush.
            preview_length: Length of NoteMeta.content_preview.
            on_change: Called after every local mutation.
        """
        self._state = state
        self._debounce_s = debounce_ms / 1000
        self._preview_length = preview_length
        self._on_change = on_change

        self._notes: list[Note] = []
        self._initialized = False
        self._last_saved = ""
        self._flush_handle: asyncio.TimerHandle | None = None
        self._flush_task: asyncio.Task[bool] | None = None

        self._meta_key: str | None = None
        self._meta: list[NoteMeta] = []

        # Emitted with the new collection after a remote restore or reload
        self.refreshed: Signal[list[Note]] = Signal("notes_refreshed")

    # === Reading ===

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def notes(self) -> list[Note]:
        return list(self._notes)

    @property
    def notes_meta(self) -> list[NoteMeta]:
        """Metadata projection, recomputed only when its fingerprint changes."""
        key = meta_fingerprint(self._notes)
        if key != self._meta_key:
            self._meta = [NoteMeta.from_note(n, self._preview_length) for n in self._notes]
            self._meta_key = key
        return list(self._meta)

    def get_note_by_id(self, note_id: str) -> Note | None:
        for note in self._notes:
            if note.id == note_id:
                return note
        return None

    def initialize(self) -> None:
        """Load the collection from the database."""
        self._notes = self._load_from_db()
        self._last_saved = save_fingerprint(self._notes)
        self._initialized = True
        logger.info("Loaded %d notes", len(self._notes))

    def refresh(self) -> None:
        """Reload the collection from the database (external update)."""
        self._notes = self._load_from_db()
        self._last_saved = save_fingerprint(self._notes)
        self.refreshed.emit(self.notes)

    def _load_from_db(self) -> list[Note]:
        notes = []
        for record in self._state.load_collection(NOTES_COLLECTION):
            try:
                notes.append(Note.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.error("Skipping unreadable note %s: %s", record.get("id"), e)
        return notes

    # === Mutations ===

    async def save_note(self, note: Note) -> None:
        """Insert or replace a note; new notes go first."""
        for index, existing in enumerate(self._notes):
            if existing.id == note.id:
                self._notes[index] = note
                break
        else:
            self._notes.insert(0, note)
        self._write_single(note)
        self._after_mutation()

    async def update_note(self, note_id: str, **updates: Any) -> Note | None:
        """Apply field updates to a note and bump its updated_at."""
        updates.pop("created_at", None)
        updates.pop("updated_at", None)
        for index, existing in enumerate(self._notes):
            if existing.id == note_id:
                updated = replace(existing, **updates, updated_at=utc_now())
                self._notes[index] = updated
                self._write_single(updated)
                self._after_mutation()
                return updated
        logger.debug("update_note: no note with id %s", note_id)
        return None

    async def bulk_update_notes(self, note_ids: Iterable[str], **updates: Any) -> int:
        """Apply the same updates to several notes. Persisted by the debounced flush."""
        updates.pop("created_at", None)
        updates.pop("updated_at", None)
        wanted = set(note_ids)
        now = utc_now()
        count = 0
        for index, existing in enumerate(self._notes):
            if existing.id in wanted:
                self._notes[index] = replace(existing, **updates, updated_at=now)
                count += 1
        if count:
            self._after_mutation()
        return count

    async def delete_note(self, note_id: str) -> bool:
        """Remove a note from memory and from the database."""
        before = len(self._notes)
        self._notes = [n for n in self._notes if n.id != note_id]
        if len(self._notes) == before:
            return False
        try:
            self._state.delete_record(NOTES_COLLECTION, note_id)
        except sqlite3.Error as e:
            logger.error("Error deleting note %s: %s", note_id, e)
        self._after_mutation()
        return True

    def _write_single(self, note: Note) -> None:
        # The debounced flush rewrites the collection if this write fails
        try:
            self._state.upsert_record(NOTES_COLLECTION, note.to_dict())
        except sqlite3.Error as e:
            logger.error("Error saving note %s: %s", note.id, e)

    def _after_mutation(self) -> None:
        self._schedule_flush()
        if self._on_change:
            self._on_change()

    # === Debounced flush ===

    def _schedule_flush(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
        loop = asyncio.get_running_loop()
        self._flush_handle = loop.call_later(self._debounce_s, self._start_flush)

    def _start_flush(self) -> None:
        self._flush_handle = None
        self._flush_task = asyncio.ensure_future(self.flush())

    @property
    def flush_pending(self) -> bool:
        return self._flush_handle is not None

    async def flush(self) -> bool:
        """Write the whole collection if it changed since the last write.

        Returns:
            True if a write happened.
        """
        fingerprint = save_fingerprint(self._notes)
        if fingerprint == self._last_saved:
            return False
        try:
            self._state.replace_collection(
                NOTES_COLLECTION, [n.to_dict() for n in self._notes]
            )
        except sqlite3.Error as e:
            logger.error("Error saving notes: %s", e)
            return False
        self._last_saved = fingerprint
        logger.debug("Flushed %d notes", len(self._notes))
        return True

    async def close(self) -> None:
        """Run any pending flush immediately."""
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
            await self.flush()
        if self._flush_task is not None and not self._flush_task.done():
            await self._flush_task

    # === LocalDomainStore ===

    def load(self) -> list[dict[str, Any]]:
        """Snapshot used by the notes sync unit."""
        if not self._initialized:
            self.initialize()
        return [n.to_dict() for n in self._notes]

    def save(self, payload: list[Any]) -> None:
        """Replace the collection with a restored remote snapshot."""
        notes = [n if isinstance(n, Note) else Note.from_dict(n) for n in payload]
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        self._state.replace_collection(NOTES_COLLECTION, [n.to_dict() for n in notes])
        self._notes = notes
        self._last_saved = save_fingerprint(notes)
        self._initialized = True
        logger.info("Notes replaced from remote copy (%d notes)", len(notes))
        self.refreshed.emit(self.notes)
