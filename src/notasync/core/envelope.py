"""Sync envelope codec.

This module provides:
- SyncMetadata / SyncEnvelope: a domain payload plus its sync metadata
- wrap / unwrap: pure helpers to build and open envelopes
- encode / decode: JSON wire format of a remote blob
- format_timestamp / parse_timestamp: ISO-8601 helpers shared by the stores

Wire format (one blob per domain):
    {
        "data": <complete domain snapshot>,
        "metadata": {
            "lastSyncTime": "2025-01-02T15:30:00.000Z",
            "deviceId": "device_1735831800000_k3j9x0a1b",
            "version": 1
        }
    }

The payload is kept as plain JSON data (list, dict or scalar); domain
specific value types are restored by the domain table, not here.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

ENVELOPE_VERSION = 1

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

T = TypeVar("T")


class EnvelopeError(ValueError):
    """Remote payload does not have the envelope shape."""


def utc_now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as an ISO-8601 UTC string with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Accepts the trailing "Z" written by JavaScript clients. Naive values
    are taken as UTC.

    Raises:
        ValueError: If the string is not a valid timestamp.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class SyncMetadata:
    """Sync metadata attached to a domain payload.

    Attributes:
        last_sync_time: When the writing device believes its copy was last
            reconciled. This is the conflict key, not an edit time.
        device_id: Identity of the writing device (diagnostics only).
        version: Envelope format version.
    """

    last_sync_time: datetime
    device_id: str
    version: int = ENVELOPE_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastSyncTime": format_timestamp(self.last_sync_time),
            "deviceId": self.device_id,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Any) -> SyncMetadata:
        if not isinstance(data, dict):
            raise EnvelopeError("metadata must be an object")
        raw_time = data.get("lastSyncTime")
        if not isinstance(raw_time, str):
            raise EnvelopeError("metadata.lastSyncTime is missing")
        try:
            last_sync_time = parse_timestamp(raw_time)
        except ValueError as e:
            raise EnvelopeError(f"metadata.lastSyncTime is invalid: {raw_time!r}") from e
        version = data.get("version", ENVELOPE_VERSION)
        if not isinstance(version, int):
            raise EnvelopeError("metadata.version must be an integer")
        return cls(
            last_sync_time=last_sync_time,
            device_id=str(data.get("deviceId", "")),
            version=version,
        )


@dataclass(frozen=True)
class SyncEnvelope(Generic[T]):
    """A complete domain snapshot plus its sync metadata."""

    data: T
    metadata: SyncMetadata

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "metadata": self.metadata.to_dict()}

    @classmethod
    def from_dict(cls, raw: Any) -> SyncEnvelope[Any]:
        """Create an envelope from decoded JSON.

        Raises:
            EnvelopeError: If the object is not an envelope.
        """
        if not isinstance(raw, dict):
            raise EnvelopeError("envelope must be an object")
        if "data" not in raw or "metadata" not in raw:
            raise EnvelopeError("envelope requires 'data' and 'metadata'")
        return cls(data=raw["data"], metadata=SyncMetadata.from_dict(raw["metadata"]))


def wrap(
    payload: T,
    device_id: str,
    now: datetime | None = None,
    version: int = ENVELOPE_VERSION,
) -> SyncEnvelope[T]:
    """Wrap a domain payload in a fresh envelope stamped with `now`."""
    metadata = SyncMetadata(
        last_sync_time=now or utc_now(),
        device_id=device_id,
        version=version,
    )
    return SyncEnvelope(data=payload, metadata=metadata)


def unwrap(envelope: SyncEnvelope[T]) -> T:
    """Get the payload of an envelope."""
    return envelope.data


def encode(envelope: SyncEnvelope[Any]) -> bytes:
    """Serialize an envelope to UTF-8 JSON bytes."""
    return json.dumps(envelope.to_dict(), ensure_ascii=False).encode("utf-8")


def decode(raw: bytes | str) -> SyncEnvelope[Any]:
    """Parse UTF-8 JSON bytes into an envelope.

    Raises:
        EnvelopeError: If the content is not JSON or not an envelope.
    """
    try:
        parsed = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise EnvelopeError(f"remote payload is not valid JSON: {e}") from e
    return SyncEnvelope.from_dict(parsed)
