"""Application wiring.

Builds the local stores, the remote adapter, the sync manager and the
coordinator around one state database, and connects every store's change
notification to its domain channel.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from notasync.client.api import DriveClient, RemoteBlobStore
from notasync.client.notes import NotesStore
from notasync.client.notifications import Notifier, log_notifier
from notasync.client.signals import EnvironmentSignals
from notasync.client.state import LocalSyncState
from notasync.client.stores import (
    SECTIONS_KEY,
    ActivityLogStore,
    CollectionStore,
    LocalDomainStore,
    MediaIndexStore,
    SettingsStore,
    SettingValueStore,
)
from notasync.client.sync.coordinator import SyncCoordinator
from notasync.client.sync.domains import build_domain_table
from notasync.client.sync.engine import SyncManager
from notasync.core.config import SyncConfig
from notasync.core.envelope import utc_now
from notasync.core.types import SyncDomain

if TYPE_CHECKING:
    from notasync.client.auth import CredentialProvider

logger = logging.getLogger(__name__)

TASKS_COLLECTION = "tasks"
FOLDERS_COLLECTION = "folders"


@dataclass
class SyncApp:
    """Everything needed to run sync for one local database."""

    config: SyncConfig
    state: LocalSyncState
    signals: EnvironmentSignals
    notes: NotesStore
    stores: dict[SyncDomain, LocalDomainStore]
    remote: RemoteBlobStore
    manager: SyncManager
    coordinator: SyncCoordinator
    _detach: Callable[[], None] = field(default=lambda: None, repr=False)
    _owns_remote: bool = field(default=False, repr=False)

    @property
    def activity(self) -> ActivityLogStore:
        return self.stores[SyncDomain.ACTIVITY]  # type: ignore[return-value]

    @property
    def media(self) -> MediaIndexStore:
        return self.stores[SyncDomain.MEDIA]  # type: ignore[return-value]

    async def close(self) -> None:
        """Flush pending note writes and release every resource."""
        self._detach()
        await self.notes.close()
        if self._owns_remote and isinstance(self.remote, DriveClient):
            await self.remote.close()
        self.state.close()


def build_stores(
    state: LocalSyncState,
    signals: EnvironmentSignals,
    config: SyncConfig,
) -> tuple[NotesStore, dict[SyncDomain, LocalDomainStore]]:
    """Create one local store per domain."""

    def notifier(domain: SyncDomain) -> Callable[[], None]:
        return lambda: signals.notify_changed(domain)

    notes = NotesStore(
        state,
        debounce_ms=config.flush_debounce_ms,
        preview_length=config.preview_length,
        on_change=notifier(SyncDomain.NOTES),
    )
    stores: dict[SyncDomain, LocalDomainStore] = {
        SyncDomain.NOTES: notes,
        SyncDomain.TASKS: CollectionStore(state, TASKS_COLLECTION),
        SyncDomain.FOLDERS: CollectionStore(state, FOLDERS_COLLECTION),
        SyncDomain.SECTIONS: SettingValueStore(state, SECTIONS_KEY, []),
        SyncDomain.SETTINGS: SettingsStore(state),
        SyncDomain.ACTIVITY: ActivityLogStore(state, on_change=notifier(SyncDomain.ACTIVITY)),
        SyncDomain.MEDIA: MediaIndexStore(state, on_change=notifier(SyncDomain.MEDIA)),
    }
    return notes, stores


def create_sync_app(
    db_path: Path | str,
    config: SyncConfig | None = None,
    credentials: CredentialProvider | None = None,
    remote: RemoteBlobStore | None = None,
    notifier: Notifier = log_notifier,
    is_online: bool = True,
    clock: Callable[[], datetime] = utc_now,
) -> SyncApp:
    """Build a ready-to-use sync application.

    Args:
        db_path: Local state database (":memory:" for a throwaway one).
        config: Engine configuration.
        credentials: Source of the access token and its refresh.
        remote: Remote blob store; a DriveClient is created if omitted.
        notifier: Receives user-visible notices.
        is_online: Initial connectivity.
        clock: Time source for sync timestamps.
    """
    config = config or SyncConfig()
    state = LocalSyncState(db_path)
    signals = EnvironmentSignals()
    notes, stores = build_stores(state, signals, config)
    notes.initialize()

    owns_remote = remote is None
    if remote is None:
        remote = DriveClient(config.drive, retry=config.retry)

    manager = SyncManager(
        remote,
        state,
        build_domain_table(config.drive, stores),
        credentials=credentials,
        signals=signals,
        clock=clock,
    )
    if isinstance(remote, DriveClient):
        remote.set_token_provider(lambda: manager.access_token)

    coordinator = SyncCoordinator(manager, notifier=notifier, is_online=is_online, clock=clock)
    coordinator.load_last_sync()
    detach = coordinator.attach(signals)

    logger.debug("Sync app ready (device %s)", manager.device_id)
    return SyncApp(
        config=config,
        state=state,
        signals=signals,
        notes=notes,
        stores=stores,
        remote=remote,
        manager=manager,
        coordinator=coordinator,
        _detach=detach,
        _owns_remote=owns_remote,
    )
