"""Shared types and dataclasses for sync operations.

This module provides:
- SyncOutcome: What a domain sync unit did
- DomainResult: Outcome of one domain sync unit
- SyncResult: Aggregated outcome of a full sync
- CoordinatorState: Observable state of the sync coordinator
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto

from notasync.core.types import SyncDomain, SyncState

BUSY_MESSAGE = "Sync already in progress"


class SyncOutcome(Enum):
    """Result of a domain sync unit."""

    CREATED = auto()  # No remote blob, local snapshot uploaded
    PUSHED = auto()  # Local newer, remote blob overwritten
    PULLED = auto()  # Remote newer or equal, local replaced
    MERGED = auto()  # Remote won, local merged with remote (activity log)
    FAILED = auto()


@dataclass
class DomainResult:
    """Outcome of one domain sync unit."""

    domain: SyncDomain
    outcome: SyncOutcome
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome != SyncOutcome.FAILED


@dataclass
class SyncResult:
    """Aggregated outcome of a full sync.

    Attributes:
        success: True if no domain failed.
        errors: Names of failed domains (or the busy message).
        busy: True if the call was dropped because a full sync was running.
        results: Per-domain results of the units that ran.
    """

    success: bool
    errors: list[str] = field(default_factory=list)
    busy: bool = False
    results: dict[SyncDomain, DomainResult] = field(default_factory=dict)

    @classmethod
    def busy_result(cls) -> SyncResult:
        return cls(success=False, errors=[BUSY_MESSAGE], busy=True)


@dataclass(frozen=True)
class CoordinatorState:
    """Observable sync state for the presentation layer."""

    is_online: bool = True
    is_syncing: bool = False
    last_sync_time: datetime | None = None
    has_error: bool = False

    @property
    def sync_state(self) -> SyncState:
        """Collapse the flags into a single display state."""
        if not self.is_online:
            return SyncState.OFFLINE
        if self.is_syncing:
            return SyncState.SYNCING
        if self.has_error:
            return SyncState.ERROR
        return SyncState.IDLE
