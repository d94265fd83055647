"""Retry logic with exponential backoff for remote blob store calls.

This module provides:
- is_retryable: Classify an exception as transient
- retry_with_backoff: Await a coroutine factory with exponential backoff

Transient failures are transport errors (connection refused, timeouts,
DNS failures) and 429/5xx responses. Credential errors (401), missing
resources (404) and other client errors fail immediately.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from notasync.core.config import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def is_retryable(exc: BaseException) -> bool:
    """Check whether an exception is worth another attempt."""
    if isinstance(exc, httpx.TransportError):
        return True
    status_code = getattr(exc, "status_code", None)
    return status_code in RETRYABLE_STATUS_CODES


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    description: str = "remote call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await `func()` retrying transient failures with exponential backoff.

    Args:
        func: Zero-argument callable returning a fresh awaitable per attempt.
        policy: Retry configuration (defaults to RetryPolicy()).
        description: Label used in log messages.
        sleep: Sleep function (injectable for tests).

    Returns:
        Result of the first successful attempt.

    Raises:
        The last exception if it is not retryable or all retries fail.
    """
    policy = policy or RetryPolicy()
    backoff = policy.initial_backoff

    for attempt in range(policy.max_retries + 1):
        try:
            return await func()
        except Exception as e:
            if not is_retryable(e):
                raise
            if attempt == policy.max_retries:
                logger.error(
                    "%s failed after %d attempts: %s",
                    description,
                    attempt + 1,
                    e,
                )
                raise

            logger.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
                description,
                attempt + 1,
                policy.max_retries + 1,
                e,
                backoff,
            )
            await sleep(backoff)
            backoff = min(backoff * policy.backoff_multiplier, policy.max_backoff)

    raise RuntimeError("Unexpected retry loop exit")
