"""Tests for retry with exponential backoff."""

import httpx
import pytest

from notasync.client.api import APIError, AuthenticationError, NotFoundError
from notasync.client.retry import is_retryable, retry_with_backoff
from notasync.core.config import RetryPolicy


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class Flaky:
    """Fails with the given exceptions, then returns "ok"."""

    def __init__(self, *errors: Exception) -> None:
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestIsRetryable:
    """Tests for is_retryable."""

    @pytest.mark.parametrize(
        "exc",
        [
            httpx.ConnectError("refused"),
            httpx.ReadTimeout("slow"),
            APIError("busy", 503),
            APIError("slow down", 429),
            APIError("boom", 500),
        ],
    )
    def test_transient(self, exc: Exception) -> None:
        """Should retry transport errors, throttling and server errors."""
        assert is_retryable(exc) is True

    @pytest.mark.parametrize(
        "exc",
        [
            AuthenticationError("expired", 401),
            NotFoundError("gone", 404),
            APIError("forbidden", 403),
            ValueError("bad"),
        ],
    )
    def test_permanent(self, exc: Exception) -> None:
        """Should not retry credential, missing or client errors."""
        assert is_retryable(exc) is False


class TestRetryWithBackoff:
    """Tests for retry_with_backoff."""

    @pytest.mark.asyncio
    async def test_success_first_try(self) -> None:
        """Should not sleep when the first attempt works."""
        sleep = FakeSleep()
        func = Flaky()

        assert await retry_with_backoff(func, RetryPolicy(), sleep=sleep) == "ok"
        assert func.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_backoff_grows_and_caps(self) -> None:
        """Should multiply delays up to max_backoff."""
        sleep = FakeSleep()
        func = Flaky(*(APIError("busy", 503) for _ in range(4)))
        policy = RetryPolicy(max_retries=4, initial_backoff=1.0, max_backoff=3.0)

        assert await retry_with_backoff(func, policy, sleep=sleep) == "ok"
        assert sleep.delays == [1.0, 2.0, 3.0, 3.0]

    @pytest.mark.asyncio
    async def test_gives_up(self) -> None:
        """Should re-raise the last error after max_retries."""
        sleep = FakeSleep()
        func = Flaky(*(httpx.ConnectError("refused") for _ in range(3)))

        with pytest.raises(httpx.ConnectError):
            await retry_with_backoff(func, RetryPolicy(max_retries=2), sleep=sleep)
        assert func.calls == 3

    @pytest.mark.asyncio
    async def test_permanent_error_raised_immediately(self) -> None:
        """Should not retry a 401."""
        sleep = FakeSleep()
        func = Flaky(AuthenticationError("expired", 401))

        with pytest.raises(AuthenticationError):
            await retry_with_backoff(func, RetryPolicy(max_retries=3), sleep=sleep)
        assert func.calls == 1
        assert sleep.delays == []
