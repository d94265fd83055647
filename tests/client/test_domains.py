"""Tests for the domain table."""

from datetime import datetime, timezone

import pytest

from notasync.client.app import build_stores
from notasync.client.notes import Note, NotesStore
from notasync.client.signals import EnvironmentSignals
from notasync.client.state import LocalSyncState
from notasync.client.sync.domains import (
    build_domain_table,
    merge_activity,
    restore_entities,
    restore_list,
    restore_mapping,
    restore_media_index,
    restore_notes,
)
from notasync.core.config import DriveConfig, SyncConfig
from notasync.core.envelope import EnvelopeError
from notasync.core.types import SyncDomain


class TestRestoreHooks:
    """Tests for payload restore hooks."""

    def test_restore_list(self) -> None:
        """Should accept lists only."""
        assert restore_list([1]) == [1]
        with pytest.raises(EnvelopeError):
            restore_list({"a": 1})

    def test_restore_entities(self) -> None:
        """Should accept objects with distinct ids."""
        tasks = [{"id": 1, "t": "a"}, {"id": "2"}]

        assert restore_entities(tasks) == tasks

    @pytest.mark.parametrize(
        "payload",
        [
            [1, "x"],
            [{"id": 1}, None],
            [{"id": 1}, {"t": "no id"}],
            [{"id": None}],
            [{"id": 1, "t": "a"}, {"id": 1, "t": "b"}],
            [{"id": 1}, {"id": "1"}],
        ],
    )
    def test_restore_entities_rejects_malformed(self, payload: object) -> None:
        """Should reject non-objects, missing ids and duplicate ids."""
        with pytest.raises(EnvelopeError):
            restore_entities(payload)

    def test_restore_mapping(self) -> None:
        """Should accept objects only."""
        assert restore_mapping({"a": 1}) == {"a": 1}
        with pytest.raises(EnvelopeError):
            restore_mapping([1])

    def test_restore_notes_rebuilds_dates(self) -> None:
        """Should turn note timestamps back into datetimes."""
        notes = restore_notes([{"id": "n1", "updatedAt": "2025-01-02T10:30:00.000Z"}])

        assert isinstance(notes[0], Note)
        assert notes[0].updated_at == datetime(2025, 1, 2, 10, 30, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "payload",
        [
            {"notes": []},
            ["not a note"],
            [{"title": "no id"}],
            [{"id": "n1", "createdAt": "someday"}],
        ],
    )
    def test_restore_notes_rejects_malformed(self, payload: object) -> None:
        """Should raise EnvelopeError instead of restoring partial data."""
        with pytest.raises(EnvelopeError):
            restore_notes(payload)

    def test_restore_media_index_fills_kinds(self) -> None:
        """Should add missing media kinds."""
        assert restore_media_index({"images": ["a.png"]}) == {"images": ["a.png"], "audio": []}

    def test_restore_media_index_rejects_bad_kind(self) -> None:
        """Should reject a non-list reference collection."""
        with pytest.raises(EnvelopeError):
            restore_media_index({"images": "a.png"})

    def test_merge_activity(self) -> None:
        """Should union entries by id."""
        assert merge_activity([{"id": 1}], [{"id": 1}, {"id": 2}]) == [{"id": 1}, {"id": 2}]


class TestBuildDomainTable:
    """Tests for build_domain_table."""

    def test_covers_every_domain(self, state: LocalSyncState) -> None:
        """Should map every domain to its blob, store and hooks."""
        notes, stores = build_stores(state, EnvironmentSignals(), SyncConfig())
        table = build_domain_table(DriveConfig(), stores)

        assert set(table) == set(SyncDomain)
        assert table[SyncDomain.NOTES].store is notes
        assert table[SyncDomain.NOTES].blob_name == "nota_notes.json"
        assert table[SyncDomain.MEDIA].blob_name == "nota_media_index.json"
        assert table[SyncDomain.ACTIVITY].merge is merge_activity
        assert all(table[d].merge is None for d in SyncDomain if d != SyncDomain.ACTIVITY)

    def test_missing_store_rejected(self, state: LocalSyncState) -> None:
        """Should refuse a table with a domain left out."""
        stores = {SyncDomain.NOTES: NotesStore(state)}
        with pytest.raises(ValueError, match="tasks"):
            build_domain_table(DriveConfig(), stores)
