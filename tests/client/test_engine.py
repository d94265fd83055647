"""Tests for the sync manager."""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

from notasync.client.app import SyncApp, create_sync_app
from notasync.client.auth import StaticCredentials
from notasync.client.notes import Note
from notasync.client.sync.engine import NO_CREDENTIAL
from notasync.client.sync.types import BUSY_MESSAGE, SyncOutcome
from notasync.core.types import SyncDomain

T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    """Manually advanced time source."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RefreshingCredentials:
    """Credential provider whose refresh hands out a new token."""

    def __init__(self, token: str | None, new_token: str | None = "fresh") -> None:
        self.token = token
        self.new_token = new_token
        self.refresh_calls = 0

    def current(self) -> str | None:
        return self.token

    async def refresh(self) -> str | None:
        self.refresh_calls += 1
        await asyncio.sleep(0)
        return self.new_token


def make_app(tmp_path: Path, remote, name: str = "device", **kwargs) -> SyncApp:  # type: ignore[no-untyped-def]
    kwargs.setdefault("credentials", StaticCredentials("tok"))
    return create_sync_app(tmp_path / f"{name}.db", remote=remote, **kwargs)


class TestSyncAll:
    """Tests for the full-sync fan-out."""

    @pytest.mark.asyncio
    async def test_first_sync_creates_every_blob(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should create one blob per domain and record the full sync."""
        app = make_app(tmp_path, remote, clock=Clock())

        result = await app.manager.sync_all()

        assert result.success
        assert result.errors == []
        assert len(remote.blobs) == len(SyncDomain)
        assert all(r.outcome == SyncOutcome.CREATED for r in result.results.values())
        assert app.manager.get_last_sync_time() == T0
        await app.close()

    @pytest.mark.asyncio
    async def test_emits_sync_complete(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should emit the aggregated result."""
        app = make_app(tmp_path, remote)
        listener = MagicMock()
        app.signals.sync_complete.connect(listener)

        result = await app.manager.sync_all()

        listener.assert_called_once_with(result)
        await app.close()

    @pytest.mark.asyncio
    async def test_domain_isolation(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should finish every other domain when one fails."""
        remote.failures["nota_tasks.json"] = httpx.ConnectError("down")
        app = make_app(tmp_path, remote)

        result = await app.manager.sync_all()

        assert not result.success
        assert result.errors == ["tasks"]
        assert not result.results[SyncDomain.TASKS].success
        assert len(remote.blobs) == len(SyncDomain) - 1
        assert "nota_tasks.json" not in remote.blobs
        await app.close()

    @pytest.mark.asyncio
    async def test_at_most_one_full_sync(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should drop a second sync_all while one is running, without I/O."""
        remote.delay = 0.01
        app = make_app(tmp_path, remote)

        first = asyncio.ensure_future(app.manager.sync_all())
        await asyncio.sleep(0)
        assert app.manager.is_busy
        calls_before = len(remote.calls)

        second = await app.manager.sync_all()

        assert second.busy
        assert second.errors == [BUSY_MESSAGE]
        assert len(remote.calls) == calls_before

        assert (await first).success
        assert remote.count("find") == len(SyncDomain)
        assert not app.manager.is_busy
        await app.close()

    @pytest.mark.asyncio
    async def test_concurrent_calls_run_once(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should execute exactly one of two overlapping calls."""
        app = make_app(tmp_path, remote)

        results = await asyncio.gather(app.manager.sync_all(), app.manager.sync_all())

        assert sorted(r.busy for r in results) == [False, True]
        assert remote.count("find") == len(SyncDomain)
        await app.close()

    @pytest.mark.asyncio
    async def test_busy_flag_released_after_failure(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should accept a new full sync after a failed one."""
        remote.failures["nota_notes.json"] = httpx.ConnectError("down")
        app = make_app(tmp_path, remote)

        assert not (await app.manager.sync_all()).success
        del remote.failures["nota_notes.json"]
        assert (await app.manager.sync_all()).success
        await app.close()


class TestCredentials:
    """Tests for token validation and refresh."""

    @pytest.mark.asyncio
    async def test_no_token_fails_without_io(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should fail every domain without touching the remote store."""
        app = make_app(tmp_path, remote, credentials=StaticCredentials(None))

        result = await app.manager.sync_all()

        assert not result.success
        assert sorted(result.errors) == sorted(d.value for d in SyncDomain)
        assert all(r.error == NO_CREDENTIAL for r in result.results.values())
        assert remote.calls == []
        await app.close()

    @pytest.mark.asyncio
    async def test_expired_token_refreshed_once(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should refresh a rejected token once for the whole fan-out."""
        remote.token_status["stale"] = 401
        credentials = RefreshingCredentials("stale")
        app = make_app(tmp_path, remote, credentials=credentials)

        result = await app.manager.sync_all()

        assert result.success
        assert credentials.refresh_calls == 1
        assert app.manager.access_token == "fresh"
        await app.close()

    @pytest.mark.asyncio
    async def test_refresh_failure(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should fail closed when the token cannot be refreshed."""
        remote.token_status["stale"] = 401
        app = make_app(tmp_path, remote, credentials=RefreshingCredentials("stale", None))

        result = await app.manager.sync_all()

        assert not result.success
        assert remote.remote_calls == 0
        await app.close()

    @pytest.mark.asyncio
    async def test_probe_transport_error(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should treat an unreachable probe as no valid credential."""
        app = make_app(tmp_path, remote)

        async def unreachable(token: str) -> int:
            raise httpx.ConnectError("offline")

        remote.probe = unreachable
        assert await app.manager.ensure_valid_token() is None
        await app.close()


class TestSingleDomain:
    """Tests for domain-scoped sync."""

    @pytest.mark.asyncio
    async def test_instant_sync_touches_one_blob(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should sync only the requested domain."""
        app = make_app(tmp_path, remote)

        assert await app.manager.instant_sync(SyncDomain.FOLDERS) is True

        assert list(remote.blobs) == ["nota_folders.json"]
        await app.close()

    @pytest.mark.asyncio
    async def test_instant_sync_signed_out(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should return False without a token."""
        app = make_app(tmp_path, remote, credentials=StaticCredentials(None))

        assert await app.manager.instant_sync(SyncDomain.FOLDERS) is False
        assert remote.calls == []
        await app.close()

    @pytest.mark.asyncio
    async def test_domain_runs_serialized(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should never run two units of the same domain at once."""
        remote.delay = 0.01
        app = make_app(tmp_path, remote)

        results = await asyncio.gather(
            app.manager.sync_domain(SyncDomain.TASKS),
            app.manager.sync_domain(SyncDomain.TASKS),
        )

        assert [r.outcome for r in results] == [SyncOutcome.CREATED, SyncOutcome.PUSHED]
        assert remote.count("write", "nota_tasks.json") == 2
        assert len(remote.blobs) == 1
        await app.close()


class TestClearCloud:
    """Tests for clear_cloud_data."""

    @pytest.mark.asyncio
    async def test_deletes_every_blob(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should remove all domain blobs."""
        app = make_app(tmp_path, remote)
        await app.manager.sync_all()

        assert await app.manager.clear_cloud_data() is True

        assert remote.blobs == {}
        assert remote.count("delete") == len(SyncDomain)
        await app.close()

    @pytest.mark.asyncio
    async def test_failure_reported(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should return False when the store cannot be reached."""
        remote.failures["nota_notes.json"] = httpx.ConnectError("down")
        app = make_app(tmp_path, remote)

        assert await app.manager.clear_cloud_data() is False
        await app.close()


class TestTwoDevices:
    """End-to-end exchange between two devices sharing one store."""

    @pytest.mark.asyncio
    async def test_edits_propagate(self, tmp_path: Path, remote) -> None:  # type: ignore[no-untyped-def]
        """Should carry notes from one device to the other and back."""
        clock = Clock()
        laptop = make_app(tmp_path, remote, name="laptop", clock=clock)
        phone = make_app(tmp_path, remote, name="phone", clock=clock)

        laptop.notes.save([Note(id="n1", title="From laptop")])
        assert (await laptop.manager.sync_all()).success

        clock.advance(60)
        assert (await phone.manager.sync_all()).success
        assert [n.title for n in phone.notes.notes] == ["From laptop"]

        clock.advance(60)
        phone.notes.save([Note(id="n1", title="Edited on phone")])
        assert (await phone.manager.sync_all()).success

        clock.advance(60)
        assert (await laptop.manager.sync_all()).success
        assert [n.title for n in laptop.notes.notes] == ["Edited on phone"]

        await laptop.close()
        await phone.close()
