"""Core module - Shared types, configuration, envelope codec and device identity."""

from notasync.core.config import DriveConfig, RetryPolicy, SyncConfig
from notasync.core.device import generate_device_id, get_device_id
from notasync.core.envelope import (
    EPOCH,
    EnvelopeError,
    SyncEnvelope,
    SyncMetadata,
    decode,
    encode,
    format_timestamp,
    parse_timestamp,
    unwrap,
    utc_now,
    wrap,
)
from notasync.core.types import SyncDomain, SyncState

__all__ = [
    # Config
    "DriveConfig",
    "RetryPolicy",
    "SyncConfig",
    # Device
    "generate_device_id",
    "get_device_id",
    # Envelope
    "EPOCH",
    "EnvelopeError",
    "SyncEnvelope",
    "SyncMetadata",
    "decode",
    "encode",
    "format_timestamp",
    "parse_timestamp",
    "unwrap",
    "utc_now",
    "wrap",
    # Types
    "SyncDomain",
    "SyncState",
]
