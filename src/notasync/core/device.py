"""Device identity.

The device id is generated once per installation and persisted in the
local sync state. It is embedded in every envelope written by this device
and used for diagnostics only.
"""

from __future__ import annotations

import secrets
import string
import time
from typing import Protocol

DEVICE_ID_KEY = "device_id"

_ALPHABET = string.digits + string.ascii_lowercase


class KeyValueStore(Protocol):
    """Minimal key-value interface used to persist the device id."""

    def get_state(self, key: str) -> str | None: ...

    def set_state(self, key: str, value: str) -> None: ...


def generate_device_id(now_ms: int | None = None) -> str:
    """Generate a new device id of the form device_<epoch-ms>_<9 base36 chars>."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"device_{now_ms}_{suffix}"


def get_device_id(store: KeyValueStore) -> str:
    """Get the persisted device id, generating it on first use."""
    device_id = store.get_state(DEVICE_ID_KEY)
    if not device_id:
        device_id = generate_device_id()
        store.set_state(DEVICE_ID_KEY, device_id)
    return device_id
