"""Shared types for notasync.

This module defines the enums used across the engine, the local stores
and the CLI.
"""

from __future__ import annotations

from enum import Enum


class SyncDomain(str, Enum):
    """Independently synchronized category of user data.

    Each domain maps to exactly one remote blob and one local
    last-sync timestamp.
    """

    NOTES = "notes"
    TASKS = "tasks"
    FOLDERS = "folders"
    SECTIONS = "sections"
    SETTINGS = "settings"
    ACTIVITY = "activity"
    MEDIA = "media"

    @property
    def state_key(self) -> str:
        """Key of the local last-sync timestamp for this domain."""
        return f"sync_{self.value}_time"

    @classmethod
    def parse(cls, value: str) -> SyncDomain:
        """Parse a domain name, raising ValueError on unknown names."""
        try:
            return cls(value.lower())
        except ValueError:
            names = ", ".join(d.value for d in cls)
            raise ValueError(f"Unknown sync domain '{value}' (expected one of: {names})") from None


class SyncState(str, Enum):
    """Coarse sync state reported to the user."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"
