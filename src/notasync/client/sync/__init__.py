"""Sync operations for the per-domain remote blobs.

Architecture:
    EnvironmentSignals → SyncCoordinator → SyncManager → DomainSyncUnit

Components:
- **SyncCoordinator**: Maps connectivity, visibility, auth and change
  signals to sync calls and publishes CoordinatorState
- **SyncManager**: Owns the token, the full-sync lock and the per-domain
  locks, fans out over every domain
- **DomainSyncUnit**: Reconciles one domain with its remote blob
- **Domain table**: Blob name, local store and restore/merge hooks per domain
- **Conflict rule**: Last-write-wins on the per-domain sync timestamp
"""

from notasync.client.sync.conflict import (
    Winner,
    merge_by_id,
    resolve_conflict,
    resolve_envelopes,
)
from notasync.client.sync.coordinator import SyncCoordinator
from notasync.client.sync.domains import DomainSpec, build_domain_table
from notasync.client.sync.engine import SyncManager
from notasync.client.sync.types import (
    BUSY_MESSAGE,
    CoordinatorState,
    DomainResult,
    SyncOutcome,
    SyncResult,
)
from notasync.client.sync.units import DomainSyncUnit

__all__ = [
    # Conflict resolution
    "Winner",
    "merge_by_id",
    "resolve_conflict",
    "resolve_envelopes",
    # Types
    "BUSY_MESSAGE",
    "CoordinatorState",
    "DomainResult",
    "SyncOutcome",
    "SyncResult",
    # Domains
    "DomainSpec",
    "build_domain_table",
    # Engine
    "DomainSyncUnit",
    "SyncCoordinator",
    "SyncManager",
]
