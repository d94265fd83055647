"""Sync manager coordinating all domain sync units.

This module provides:
- SyncManager: Owns the access token, the full-sync lock and the
  fan-out over every domain

Locking:
    A full sync is guarded by a drop-not-queue flag: a second `sync_all`
    while one is running returns a busy result without remote I/O.
    Each domain additionally has its own lock, held by every unit run,
    so a domain-scoped sync and a full sync never write the same blob at
    the same time while different domains still interleave.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING

import httpx

from notasync.client.api import APIError
from notasync.client.sync.types import DomainResult, SyncOutcome, SyncResult
from notasync.client.sync.units import DomainSyncUnit
from notasync.core.device import get_device_id
from notasync.core.envelope import utc_now
from notasync.core.types import SyncDomain

if TYPE_CHECKING:
    from notasync.client.api import RemoteBlobStore
    from notasync.client.auth import CredentialProvider
    from notasync.client.signals import EnvironmentSignals
    from notasync.client.state import LocalSyncState
    from notasync.client.sync.domains import DomainSpec

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Awaitable[str | None]]

NO_CREDENTIAL = "no valid credential"


class SyncManager:
    """Runs domain sync units against the remote blob store.

    Usage:
        manager = SyncManager(drive, state, build_domain_table(config.drive, stores))
        manager.set_access_token(token)
        manager.set_refresh_callback(credentials.refresh)

        result = await manager.sync_all()
        if not result.success:
            print(result.errors)
    """

    def __init__(
        self,
        remote: RemoteBlobStore,
        state: LocalSyncState,
        domains: Mapping[SyncDomain, DomainSpec],
        credentials: CredentialProvider | None = None,
        signals: EnvironmentSignals | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the manager.

        Args:
            remote: Remote blob store adapter.
            state: Local database (timestamps, device id).
            domains: Domain table covering every SyncDomain.
            credentials: Optional provider for the initial token and refresh.
            signals: Optional channels; `sync_complete` is emitted after sync_all.
            clock: Time source.
        """
        self._remote = remote
        self._state = state
        self._domains = dict(domains)
        self._signals = signals
        self._clock = clock

        self._access_token: str | None = None
        self._refresh_callback: RefreshCallback | None = None
        if credentials is not None:
            self.set_credentials(credentials)

        self._busy = False
        self._refresh_lock = asyncio.Lock()
        self._domain_locks = {domain: asyncio.Lock() for domain in self._domains}
        self._units: dict[SyncDomain, DomainSyncUnit] = {}
        self._device_id: str | None = None

    # === Credentials ===

    @property
    def access_token(self) -> str | None:
        return self._access_token

    def set_access_token(self, token: str | None) -> None:
        self._access_token = token

    def set_refresh_callback(self, callback: RefreshCallback | None) -> None:
        self._refresh_callback = callback

    def set_credentials(self, credentials: CredentialProvider) -> None:
        """Take the token and refresh function from a credential provider."""
        self._access_token = credentials.current()
        self._refresh_callback = credentials.refresh

    async def ensure_valid_token(self) -> str | None:
        """Probe the current token and refresh it once if rejected.

        Returns:
            A token accepted by the remote store, or None (fail closed).
        """
        token = self._access_token
        if not token:
            return None

        try:
            status = await self._remote.probe(token)
        except (httpx.HTTPError, OSError) as e:
            logger.error("Token validation error: %s", e)
            return None

        if status < 400:
            return token
        if status != 401:
            logger.warning("Token probe returned HTTP %d", status)
            return None
        return await self._refresh(token)

    async def _refresh(self, rejected: str) -> str | None:
        async with self._refresh_lock:
            # Another unit already refreshed while we waited
            if self._access_token and self._access_token != rejected:
                return self._access_token
            if self._refresh_callback is None:
                logger.warning("Access token expired and no refresh is available")
                return None
            try:
                new_token = await self._refresh_callback()
            except Exception:
                logger.exception("Token refresh failed")
                return None
            if not new_token:
                logger.warning("Token refresh returned no token")
                return None
            self._access_token = new_token
            logger.info("Access token refreshed")
            return new_token

    # === Sync ===

    @property
    def device_id(self) -> str:
        if self._device_id is None:
            self._device_id = get_device_id(self._state)
        return self._device_id

    @property
    def is_busy(self) -> bool:
        """True while a full sync is running."""
        return self._busy

    @property
    def domains(self) -> list[SyncDomain]:
        return list(self._domains)

    def _unit(self, domain: SyncDomain) -> DomainSyncUnit:
        unit = self._units.get(domain)
        if unit is None:
            unit = DomainSyncUnit(
                self._domains[domain],
                self._remote,
                self._state,
                self.device_id,
                clock=self._clock,
            )
            self._units[domain] = unit
        return unit

    async def sync_domain(self, domain: SyncDomain) -> DomainResult:
        """Run one domain sync unit under its domain lock."""
        async with self._domain_locks[domain]:
            token = await self.ensure_valid_token()
            if token is None:
                logger.warning("Skipping %s sync: %s", domain.value, NO_CREDENTIAL)
                return DomainResult(domain, SyncOutcome.FAILED, NO_CREDENTIAL)
            return await self._unit(domain).run()

    async def sync_all(self) -> SyncResult:
        """Sync every domain concurrently.

        Returns immediately with a busy result if a full sync is running.
        One domain failing never stops the others.
        """
        if self._busy:
            logger.info("Full sync already in progress, skipping")
            return SyncResult.busy_result()

        self._busy = True
        try:
            domains = list(self._domains)
            outcomes = await asyncio.gather(
                *(self.sync_domain(domain) for domain in domains),
                return_exceptions=True,
            )

            results: dict[SyncDomain, DomainResult] = {}
            errors: list[str] = []
            for domain, outcome in zip(domains, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error("%s sync crashed: %r", domain.value, outcome)
                    outcome = DomainResult(domain, SyncOutcome.FAILED, repr(outcome))
                results[domain] = outcome
                if not outcome.success:
                    errors.append(domain.value)

            self._state.set_last_full_sync(self._clock())
            result = SyncResult(success=not errors, errors=errors, results=results)

            if errors:
                logger.warning("Full sync finished with errors: %s", ", ".join(errors))
            else:
                logger.info("Full sync complete")

            if self._signals is not None:
                self._signals.sync_complete.emit(result)
            return result
        finally:
            self._busy = False

    async def instant_sync(self, domain: SyncDomain) -> bool:
        """Sync a single domain right away, outside the full-sync lock."""
        if not self._access_token:
            return False
        result = await self.sync_domain(domain)
        return result.success

    def get_last_sync_time(self) -> datetime | None:
        """Get the time of the last full sync."""
        return self._state.get_last_full_sync()

    async def clear_cloud_data(self) -> bool:
        """Delete every domain blob from the remote store."""
        token = await self.ensure_valid_token()
        if token is None:
            return False

        try:
            for spec in self._domains.values():
                handle = await self._remote.find(spec.blob_name)
                if handle is not None:
                    await self._remote.delete(handle.id)
                    logger.info("Deleted remote %s", spec.blob_name)
        except (APIError, httpx.HTTPError, OSError) as e:
            logger.error("Clear cloud data error: %s", e)
            return False

        logger.info("Cloud data cleared")
        return True
