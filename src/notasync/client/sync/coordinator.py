"""Sync coordinator reacting to environment signals.

This module provides:
- SyncCoordinator: Maps environment events to sync manager calls and
  exposes an observable CoordinatorState

Trigger table:
    | Event                    | Action                                 |
    |--------------------------|----------------------------------------|
    | connectivity restored    | notice + full sync                     |
    | connectivity lost        | notice, no sync                        |
    | application visible      | full sync, no delay                    |
    | signed in                | set token + full sync ("initial")      |
    | signed out               | clear token                            |
    | domain changed           | sync that domain only, unlocked        |
    | manual request           | full sync + pass/fail notice           |

Full syncs and `sync_now` share a drop-not-queue lock: a trigger arriving
while one of them runs is dropped and returns False. Domain changes skip
that lock and rely on the per-domain locks of the sync manager.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from notasync.client.notifications import (
    Notifier,
    log_notifier,
    offline_notice,
    online_notice,
    sync_result_notice,
)
from notasync.client.sync.types import CoordinatorState
from notasync.core.envelope import utc_now
from notasync.core.types import SyncDomain

if TYPE_CHECKING:
    from notasync.client.signals import AuthChange, EnvironmentSignals
    from notasync.client.sync.engine import SyncManager

logger = logging.getLogger(__name__)

StateCallback = Callable[[CoordinatorState], Any]

ALL_DOMAINS = "all"


class SyncCoordinator:
    """Decides when to sync and publishes the sync state.

    Usage:
        coordinator = SyncCoordinator(manager)
        coordinator.subscribe(lambda state: render(state))
        detach = coordinator.attach(signals)

        await coordinator.trigger_sync()
    """

    def __init__(
        self,
        manager: SyncManager,
        notifier: Notifier = log_notifier,
        is_online: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the coordinator.

        Args:
            manager: Sync manager to drive.
            notifier: Receives user-visible notices.
            is_online: Initial connectivity.
            clock: Time source for last_sync_time.
        """
        self._manager = manager
        self._notifier = notifier
        self._clock = clock
        self._state = CoordinatorState(is_online=is_online)
        self._subscribers: list[StateCallback] = []
        self._locked = False

    # === Observable state ===

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def is_signed_in(self) -> bool:
        return self._manager.access_token is not None

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """Register a state observer. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _update(self, **changes: Any) -> None:
        new_state = replace(self._state, **changes)
        if new_state == self._state:
            return
        self._state = new_state
        for callback in list(self._subscribers):
            try:
                callback(new_state)
            except Exception:
                logger.exception("State subscriber failed")

    def get_last_sync_time(self) -> datetime | None:
        return self._state.last_sync_time

    def load_last_sync(self) -> datetime | None:
        """Seed last_sync_time from the persisted last full sync."""
        last = self._manager.get_last_sync_time()
        if last is not None:
            self._update(last_sync_time=last)
        return last

    # === Signal wiring ===

    def attach(self, signals: EnvironmentSignals) -> Callable[[], None]:
        """Subscribe to every environment channel. Returns a detach function."""
        disconnects = [
            signals.connectivity.connect(self.on_connectivity),
            signals.visibility.connect(self.on_visibility),
            signals.auth.connect(self.on_auth_changed),
        ]
        for channel in signals.changed.values():
            disconnects.append(channel.connect(self.on_domain_changed))

        def detach() -> None:
            for disconnect in disconnects:
                disconnect()

        return detach

    # === Triggers ===

    async def on_connectivity(self, online: bool) -> bool:
        """Connectivity changed."""
        self._update(is_online=online)
        if not online:
            self._notify(offline_notice())
            return False
        if not self.is_signed_in:
            return False
        self._notify(online_notice())
        return await self.perform_sync("network-restored")

    async def on_visibility(self, visible: bool) -> bool:
        """Application visibility changed."""
        if not visible:
            return False
        return await self.perform_sync("app-focus")

    async def on_auth_changed(self, change: AuthChange) -> bool:
        """Sign-in state changed."""
        if change.signed_in and change.access_token:
            self._manager.set_access_token(change.access_token)
            return await self.perform_sync("initial")
        self._manager.set_access_token(None)
        return False

    async def on_domain_changed(self, domain: SyncDomain) -> bool:
        """Local data of one domain changed.

        Runs outside the coordinator lock: the manager's per-domain locks
        keep one blob to one writer, so changes to different domains and
        changes during a full sync are never dropped.
        """
        if not self.is_signed_in:
            return False
        logger.debug("%s updated - syncing immediately", domain.value)
        success = await self._manager.instant_sync(domain)
        if success:
            self._update(last_sync_time=self._clock())
        else:
            logger.warning("Instant sync of %s failed", domain.value)
            self._update(has_error=True)
        return success

    async def trigger_sync(self) -> bool:
        """Manual full sync; the outcome is reported to the user."""
        return await self.perform_sync("manual", notify=True)

    # === Sync execution ===

    def _try_acquire(self, reason: str) -> bool:
        if self._locked:
            logger.info("Sync already in progress, skipping (%s)", reason)
            return False
        self._locked = True
        return True

    def _release(self) -> None:
        self._locked = False

    async def perform_sync(self, reason: str, notify: bool = False) -> bool:
        """Run a full sync unless one is already running."""
        if not self.is_signed_in:
            return False
        if not self._try_acquire(reason):
            return False

        try:
            self._update(is_syncing=True, has_error=False)
            logger.info("Syncing (%s)...", reason)
            result = await self._manager.sync_all()

            if result.success:
                self._update(last_sync_time=self._clock())
                logger.info("Sync complete (%s)", reason)
            elif result.busy:
                logger.info("Sync manager busy (%s)", reason)
            else:
                logger.warning("Sync had errors (%s): %s", reason, ", ".join(result.errors))
                self._update(has_error=True)

            if notify:
                self._notify(sync_result_notice(result.success, result.errors))
            return result.success
        finally:
            self._update(is_syncing=False)
            self._release()

    async def sync_now(self, target: SyncDomain | str = ALL_DOMAINS) -> bool:
        """Sync one domain, or every domain with "all"."""
        if isinstance(target, str) and target.lower() == ALL_DOMAINS:
            return await self.perform_sync("sync-now")

        domain = target if isinstance(target, SyncDomain) else SyncDomain.parse(target)
        if not self.is_signed_in:
            return False
        if not self._try_acquire(domain.value):
            return False

        try:
            self._update(is_syncing=True)
            result = await self._manager.sync_domain(domain)
            if result.success:
                self._update(last_sync_time=self._clock())
            else:
                logger.warning("Sync %s failed: %s", domain.value, result.error)
                self._update(has_error=True)
            return result.success
        finally:
            self._update(is_syncing=False)
            self._release()

    def _notify(self, notification: Any) -> None:
        try:
            self._notifier(notification)
        except Exception:
            logger.exception("Notifier failed")
