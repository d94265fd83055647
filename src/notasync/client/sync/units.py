"""Domain sync unit.

One unit reconciles one domain:
1. load the local snapshot
2. read the local last-sync timestamp (epoch if never synced)
3. locate the remote blob
4. no blob: upload the local snapshot in a fresh envelope
5. blob found: local strictly newer -> overwrite remote,
   otherwise restore the remote snapshot locally (merged for the
   activity log)
6. persist the new local last-sync timestamp

Failures are returned as a FAILED result, never raised. A remote payload
that cannot be parsed leaves local data untouched.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import httpx

from notasync.client.api import APIError, AuthenticationError
from notasync.client.sync.conflict import Winner, resolve_conflict
from notasync.client.sync.types import DomainResult, SyncOutcome
from notasync.core.envelope import EnvelopeError, decode, encode, unwrap, utc_now, wrap

if TYPE_CHECKING:
    from notasync.client.api import RemoteBlobStore
    from notasync.client.state import LocalSyncState
    from notasync.client.sync.domains import DomainSpec

logger = logging.getLogger(__name__)

# Local sync time must stay ahead of the envelope just written
_MIN_STEP = timedelta(milliseconds=1)


class DomainSyncUnit:
    """Reconciles one domain with its remote blob."""

    def __init__(
        self,
        spec: DomainSpec,
        remote: RemoteBlobStore,
        state: LocalSyncState,
        device_id: str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._spec = spec
        self._remote = remote
        self._state = state
        self._device_id = device_id
        self._clock = clock

    @property
    def spec(self) -> DomainSpec:
        return self._spec

    async def run(self) -> DomainResult:
        """Run the unit. Never raises for remote, payload or storage errors."""
        domain = self._spec.domain
        try:
            outcome = await self._sync()
        except AuthenticationError as e:
            logger.error("%s sync rejected by remote store: %s", domain.value, e)
            return DomainResult(domain, SyncOutcome.FAILED, f"credential rejected: {e}")
        except EnvelopeError as e:
            logger.error("%s remote copy is malformed, keeping local data: %s", domain.value, e)
            return DomainResult(domain, SyncOutcome.FAILED, f"malformed remote payload: {e}")
        except (APIError, httpx.HTTPError, OSError) as e:
            logger.error("%s sync failed: %s", domain.value, e)
            return DomainResult(domain, SyncOutcome.FAILED, str(e))
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error("%s local store error: %s", domain.value, e)
            return DomainResult(domain, SyncOutcome.FAILED, f"local store error: {e}")
        return DomainResult(domain, outcome)

    async def _sync(self) -> SyncOutcome:
        spec = self._spec
        payload = spec.store.load()
        local_time = self._state.get_domain_sync_time(spec.domain)

        handle = await self._remote.find(spec.blob_name)
        written_at: datetime | None = None

        if handle is None:
            envelope = wrap(payload, self._device_id, self._clock())
            await self._remote.write(spec.blob_name, encode(envelope))
            written_at = envelope.metadata.last_sync_time
            outcome = SyncOutcome.CREATED
            logger.info("%s uploaded (first sync)", spec.domain.value)
        else:
            remote_envelope = decode(await self._remote.read(handle.id))
            winner = resolve_conflict(local_time, remote_envelope.metadata.last_sync_time)

            if winner == Winner.LOCAL:
                envelope = wrap(payload, self._device_id, self._clock())
                await self._remote.write(spec.blob_name, encode(envelope), existing_id=handle.id)
                written_at = envelope.metadata.last_sync_time
                outcome = SyncOutcome.PUSHED
                logger.info("%s pushed to remote", spec.domain.value)
            else:
                restored = spec.restore(unwrap(remote_envelope))
                if spec.merge is not None:
                    restored = spec.merge(restored, payload)
                    outcome = SyncOutcome.MERGED
                else:
                    outcome = SyncOutcome.PULLED
                spec.store.save(restored)
                logger.info(
                    "%s restored from remote (written by %s)",
                    spec.domain.value,
                    remote_envelope.metadata.device_id or "unknown device",
                )

        synced_at = self._clock()
        if written_at is not None and synced_at < written_at + _MIN_STEP:
            synced_at = written_at + _MIN_STEP
        self._state.set_domain_sync_time(spec.domain, synced_at)
        return outcome
