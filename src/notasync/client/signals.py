"""Typed signal channels between the local stores, the environment and the coordinator.

This module provides:
- Signal: A named observer list carrying values of one type
- AuthChange: Payload of sign-in / sign-out notifications
- EnvironmentSignals: The bundle of channels the coordinator listens to

Handlers may be plain functions or coroutine functions. Coroutine results
are scheduled on the running event loop; `drain` awaits them.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from notasync.core.types import SyncDomain

logger = logging.getLogger(__name__)

T = TypeVar("T")

Handler = Callable[[T], Any]


class Signal(Generic[T]):
    """Observer channel for values of type T."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: list[Handler[T]] = []
        self._pending: set[asyncio.Task[Any]] = set()

    def __repr__(self) -> str:
        return f"Signal({self.name!r}, handlers={len(self._handlers)})"

    def connect(self, handler: Handler[T]) -> Callable[[], None]:
        """Register a handler. Returns a function that disconnects it."""
        self._handlers.append(handler)
        return lambda: self.disconnect(handler)

    def disconnect(self, handler: Handler[T]) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def _call(self, handler: Handler[T], value: T) -> Any:
        try:
            return handler(value)
        except Exception:
            logger.exception("Handler for signal %s failed", self.name)
            return None

    def emit(self, value: T) -> None:
        """Notify every handler, scheduling coroutine handlers as tasks."""
        for handler in list(self._handlers):
            result = self._call(handler, value)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._on_task_done)

    async def drain(self) -> None:
        """Wait for tasks scheduled by `emit` to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Async handler for signal %s failed",
                self.name,
                exc_info=task.exception(),
            )


@dataclass(frozen=True)
class AuthChange:
    """Sign-in state change."""

    signed_in: bool
    access_token: str | None = None


def _domain_signals() -> dict[SyncDomain, Signal[SyncDomain]]:
    return {domain: Signal(f"{domain.value}_changed") for domain in SyncDomain}


@dataclass
class EnvironmentSignals:
    """Channels consumed by the sync coordinator.

    Attributes:
        connectivity: True when the network comes back, False when lost.
        visibility: True when the application regains the foreground.
        auth: Sign-in / sign-out notifications.
        changed: One channel per domain, emitted after a local mutation.
        sync_complete: Emitted by the sync manager after a full sync.
    """

    connectivity: Signal[bool] = field(default_factory=lambda: Signal("connectivity"))
    visibility: Signal[bool] = field(default_factory=lambda: Signal("visibility"))
    auth: Signal[AuthChange] = field(default_factory=lambda: Signal("auth"))
    changed: dict[SyncDomain, Signal[SyncDomain]] = field(default_factory=_domain_signals)
    sync_complete: Signal[Any] = field(default_factory=lambda: Signal("sync_complete"))

    def notify_changed(self, domain: SyncDomain) -> None:
        """Emit the changed signal of a domain."""
        self.changed[domain].emit(domain)
