"""Shared configuration classes for notasync.

This module defines the settings of the remote adapter, the retry policy
applied to every remote call and the local store tuning knobs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from notasync.core.types import SyncDomain

DRIVE_API_BASE = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_BASE = "https://www.googleapis.com/upload/drive/v3"

# Remote blob names, relative to the file prefix
BLOB_SUFFIXES: dict[SyncDomain, str] = {
    SyncDomain.NOTES: "notes.json",
    SyncDomain.TASKS: "tasks.json",
    SyncDomain.FOLDERS: "folders.json",
    SyncDomain.SECTIONS: "sections.json",
    SyncDomain.SETTINGS: "settings.json",
    SyncDomain.ACTIVITY: "activity.json",
    SyncDomain.MEDIA: "media_index.json",
}


@dataclass
class DriveConfig:
    """Configuration for the Drive appData blob store.

    Attributes:
        api_base: Base URL of the Drive v3 metadata API.
        upload_base: Base URL of the Drive v3 upload API.
        timeout: Per-request timeout in seconds.
        file_prefix: Prefix of every remote blob name (e.g. "nota").
    """

    api_base: str = DRIVE_API_BASE
    upload_base: str = DRIVE_UPLOAD_BASE
    timeout: float = 30.0
    file_prefix: str = "nota"

    def __post_init__(self) -> None:
        """Normalize base URLs."""
        self.api_base = self.api_base.rstrip("/")
        self.upload_base = self.upload_base.rstrip("/")

    def blob_name(self, domain: SyncDomain) -> str:
        """Get the fixed remote blob name of a domain."""
        return f"{self.file_prefix}_{BLOB_SUFFIXES[domain]}"


@dataclass
class RetryPolicy:
    """Retry configuration for remote calls.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retry).
        initial_backoff: First delay in seconds.
        max_backoff: Upper bound for a single delay.
        backoff_multiplier: Growth factor between delays.
    """

    max_retries: int = 3
    initial_backoff: float = 0.5
    max_backoff: float = 8.0
    backoff_multiplier: float = 2.0


@dataclass
class SyncConfig:
    """Top-level engine configuration."""

    drive: DriveConfig = field(default_factory=DriveConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    flush_debounce_ms: int = 500
    preview_length: int = 200

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        """Build a config from a flat dictionary (as stored by the CLI).

        Unknown keys are ignored so that the CLI config file can hold
        credentials next to engine settings.
        """
        drive = DriveConfig(
            api_base=data.get("api_base", DRIVE_API_BASE),
            upload_base=data.get("upload_base", DRIVE_UPLOAD_BASE),
            timeout=float(data.get("timeout", 30.0)),
            file_prefix=data.get("file_prefix", "nota"),
        )
        retry = RetryPolicy(
            max_retries=int(data.get("max_retries", 3)),
            initial_backoff=float(data.get("initial_backoff", 0.5)),
            max_backoff=float(data.get("max_backoff", 8.0)),
        )
        return cls(
            drive=drive,
            retry=retry,
            flush_debounce_ms=int(data.get("flush_debounce_ms", 500)),
            preview_length=int(data.get("preview_length", 200)),
        )
