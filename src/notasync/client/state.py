"""Local state management for the sync client.

This module provides:
- LocalSyncState: SQLite-based local database

Tables:
    sync_state  Engine bookkeeping: per-domain last-sync timestamps,
                last full sync, device id.
    settings    User settings as JSON values (also hosts task sections,
                the activity log and the media index).
    records     Entity collections (notes, tasks, folders), one row per
                entity, ordered by position.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from notasync.core.envelope import EPOCH, format_timestamp, parse_timestamp
from notasync.core.types import SyncDomain

logger = logging.getLogger(__name__)

LAST_FULL_SYNC_KEY = "last_full_sync"


class LocalSyncState:
    """SQLite-based local database for sync bookkeeping and user data."""

    def __init__(self, db_path: Path | str) -> None:
        """Initialize local state database.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        if str(db_path) != ":memory:":
            db_path = Path(db_path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row

        if str(db_path) != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS sync_state (
                key TEXT PRIMARY KEY,
                value TEXT
            );

            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS records (
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                position INTEGER NOT NULL,
                data TEXT NOT NULL,
                PRIMARY KEY (collection, id)
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # === Sync state ===

    def get_state(self, key: str) -> str | None:
        """Get a sync state value."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM sync_state WHERE key = ?",
                (key,),
            ).fetchone()
        return row["value"] if row else None

    def set_state(self, key: str, value: str) -> None:
        """Set a sync state value."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_domain_sync_time(self, domain: SyncDomain) -> datetime:
        """Get the last-sync timestamp of a domain (epoch if never synced)."""
        value = self.get_state(domain.state_key)
        if not value:
            return EPOCH
        try:
            return parse_timestamp(value)
        except ValueError:
            logger.warning("Ignoring invalid %s value: %r", domain.state_key, value)
            return EPOCH

    def set_domain_sync_time(self, domain: SyncDomain, timestamp: datetime) -> None:
        """Persist the last-sync timestamp of a domain."""
        self.set_state(domain.state_key, format_timestamp(timestamp))

    def get_last_full_sync(self) -> datetime | None:
        """Get timestamp of the last full sync, None if never run."""
        value = self.get_state(LAST_FULL_SYNC_KEY)
        return parse_timestamp(value) if value else None

    def set_last_full_sync(self, timestamp: datetime) -> None:
        """Set timestamp of the last full sync."""
        self.set_state(LAST_FULL_SYNC_KEY, format_timestamp(timestamp))

    # === Settings ===

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a user setting, `default` if absent."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM settings WHERE key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return default
        return json.loads(row["value"])

    def set_setting(self, key: str, value: Any) -> None:
        """Set a user setting (any JSON-serializable value)."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, json.dumps(value)),
            )

    def get_all_settings(self) -> dict[str, Any]:
        """Get every user setting."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT key, value FROM settings ORDER BY key"
            ).fetchall()
        return {row["key"]: json.loads(row["value"]) for row in rows}

    # === Entity collections ===

    def load_collection(self, collection: str) -> list[dict[str, Any]]:
        """Load every record of a collection in position order."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT data FROM records WHERE collection = ? ORDER BY position",
                (collection,),
            ).fetchall()
        return [json.loads(row["data"]) for row in rows]

    def replace_collection(self, collection: str, records: list[dict[str, Any]]) -> None:
        """Atomically replace a whole collection.

        Raises:
            ValueError: If a record is not an object with an "id", or two
                records share one. Nothing is written in that case.
        """
        rows = []
        seen: set[str] = set()
        for index, record in enumerate(records):
            if not isinstance(record, dict) or record.get("id") is None:
                raise ValueError(f"{collection} record {index} has no id")
            record_id = str(record["id"])
            if record_id in seen:
                raise ValueError(f"{collection} has duplicate id {record_id!r}")
            seen.add(record_id)
            rows.append((collection, record_id, index, json.dumps(record)))

        with self._lock:
            self._conn.execute("BEGIN")
            try:
                self._conn.execute(
                    "DELETE FROM records WHERE collection = ?",
                    (collection,),
                )
                self._conn.executemany(
                    "INSERT INTO records (collection, id, position, data) VALUES (?, ?, ?, ?)",
                    rows,
                )
            except Exception:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")

    def upsert_record(self, collection: str, record: dict[str, Any]) -> None:
        """Insert or update a single record.

        Existing records keep their position; new records go first.
        """
        record_id = str(record["id"])
        with self._lock:
            row = self._conn.execute(
                "SELECT position FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            ).fetchone()
            if row is not None:
                position = row["position"]
            else:
                first = self._conn.execute(
                    "SELECT MIN(position) AS first FROM records WHERE collection = ?",
                    (collection,),
                ).fetchone()
                position = (first["first"] - 1) if first["first"] is not None else 0
            self._conn.execute(
                "INSERT OR REPLACE INTO records (collection, id, position, data) "
                "VALUES (?, ?, ?, ?)",
                (collection, record_id, position, json.dumps(record)),
            )

    def delete_record(self, collection: str, record_id: str) -> bool:
        """Delete a single record. Returns True if it existed."""
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM records WHERE collection = ? AND id = ?",
                (collection, str(record_id)),
            )
        return cursor.rowcount > 0
