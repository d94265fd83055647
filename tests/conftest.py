"""Shared pytest fixtures.

Provides an in-memory remote blob store so the sync engine can be tested
without Google Drive, plus local state helpers.
"""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from notasync.client.api import DriveFile, NotFoundError
from notasync.client.state import LocalSyncState
from notasync.core.envelope import SyncEnvelope, decode, encode, wrap

OTHER_DEVICE = "device_1700000000000_otherdev1"


class FakeBlobStore:
    """RemoteBlobStore keeping blobs in memory.

    Attributes:
        blobs: name -> (id, content).
        calls: Every call as (operation, argument).
        failures: name -> exception raised by find/write for that name.
        token_status: token -> status returned by probe (default 200).
        delay: Seconds every find waits, to keep units in flight.
    """

    def __init__(self) -> None:
        self.blobs: dict[str, tuple[str, bytes]] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, Exception] = {}
        self.token_status: dict[str, int] = {}
        self.delay = 0.0
        self._next_id = 1

    # RemoteBlobStore

    async def find(self, name: str) -> DriveFile | None:
        self.calls.append(("find", name))
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.failures:
            raise self.failures[name]
        if name not in self.blobs:
            return None
        return DriveFile(id=self.blobs[name][0], name=name)

    async def read(self, file_id: str) -> bytes:
        self.calls.append(("read", file_id))
        for blob_id, content in self.blobs.values():
            if blob_id == file_id:
                return content
        raise NotFoundError("Resource not found", 404)

    async def write(self, name: str, content: bytes, existing_id: str | None = None) -> str:
        self.calls.append(("write", name))
        if name in self.failures:
            raise self.failures[name]
        if existing_id is None:
            blob_id = f"blob{self._next_id}"
            self._next_id += 1
        else:
            blob_id = existing_id
        self.blobs[name] = (blob_id, content)
        return blob_id

    async def delete(self, file_id: str) -> bool:
        self.calls.append(("delete", file_id))
        for name, (blob_id, _) in list(self.blobs.items()):
            if blob_id == file_id:
                del self.blobs[name]
                return True
        return False

    async def probe(self, token: str) -> int:
        self.calls.append(("probe", token))
        return self.token_status.get(token, 200)

    # Test helpers

    def put(self, name: str, payload: Any, when: datetime, device_id: str = OTHER_DEVICE) -> None:
        """Store a blob as another device would have written it."""
        blob_id = f"blob{self._next_id}"
        self._next_id += 1
        self.blobs[name] = (blob_id, encode(wrap(payload, device_id, when)))

    def put_raw(self, name: str, content: bytes) -> None:
        blob_id = f"blob{self._next_id}"
        self._next_id += 1
        self.blobs[name] = (blob_id, content)

    def envelope(self, name: str) -> SyncEnvelope[Any]:
        return decode(self.blobs[name][1])

    def count(self, operation: str, name: str | None = None) -> int:
        return sum(1 for op, arg in self.calls if op == operation and (name is None or arg == name))

    @property
    def remote_calls(self) -> int:
        """Calls other than token probes."""
        return sum(1 for op, _ in self.calls if op != "probe")


@pytest.fixture
def remote() -> FakeBlobStore:
    """In-memory remote blob store."""
    return FakeBlobStore()


@pytest.fixture
def state(tmp_path: Path) -> Generator[LocalSyncState, None, None]:
    """Local state database in a temporary directory."""
    s = LocalSyncState(tmp_path / "state.db")
    yield s
    s.close()
