"""Tests for the sync envelope codec."""

import json
from datetime import datetime, timedelta, timezone

import pytest

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
    wrap,
)

NOW = datetime(2025, 1, 2, 15, 30, 0, 123456, tzinfo=timezone.utc)


class TestTimestamps:
    """Tests for ISO-8601 helpers."""

    def test_format_uses_milliseconds_and_z(self) -> None:
        """Should format with millisecond precision and a Z suffix."""
        assert format_timestamp(NOW) == "2025-01-02T15:30:00.123Z"

    def test_format_converts_to_utc(self) -> None:
        """Should convert offsets to UTC."""
        paris = timezone(timedelta(hours=1))
        value = datetime(2025, 1, 2, 16, 30, 0, tzinfo=paris)
        assert format_timestamp(value) == "2025-01-02T15:30:00.000Z"

    def test_format_treats_naive_as_utc(self) -> None:
        """Should take naive datetimes as UTC."""
        assert format_timestamp(datetime(2025, 1, 2, 15, 30)) == "2025-01-02T15:30:00.000Z"

    def test_parse_accepts_z_suffix(self) -> None:
        """Should parse JavaScript-style timestamps."""
        parsed = parse_timestamp("2025-01-02T15:30:00.123Z")
        assert parsed == datetime(2025, 1, 2, 15, 30, 0, 123000, tzinfo=timezone.utc)

    def test_parse_naive_is_utc(self) -> None:
        """Should attach UTC to naive strings."""
        assert parse_timestamp("2025-01-02T15:30:00").tzinfo == timezone.utc

    def test_parse_invalid_raises(self) -> None:
        """Should raise ValueError for garbage."""
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")

    def test_round_trip_truncates_to_milliseconds(self) -> None:
        """Should keep millisecond precision through format/parse."""
        assert parse_timestamp(format_timestamp(NOW)) == NOW.replace(microsecond=123000)


class TestWrap:
    """Tests for wrap/unwrap."""

    def test_wrap_stamps_metadata(self) -> None:
        """Should build metadata from device id and time."""
        envelope = wrap([{"id": "a"}], "device_1", NOW)

        assert envelope.data == [{"id": "a"}]
        assert envelope.metadata.last_sync_time == NOW
        assert envelope.metadata.device_id == "device_1"
        assert envelope.metadata.version == 1

    def test_wrap_defaults_to_now(self) -> None:
        """Should use the current time when none is given."""
        before = datetime.now(timezone.utc)
        envelope = wrap({}, "device_1")
        assert envelope.metadata.last_sync_time >= before

    def test_unwrap_returns_payload(self) -> None:
        """Should give back the payload unchanged."""
        payload = {"theme": "dark"}
        assert unwrap(wrap(payload, "device_1", NOW)) is payload


class TestWireFormat:
    """Tests for encode/decode."""

    def test_encode_shape(self) -> None:
        """Should produce the data/metadata JSON object."""
        raw = json.loads(encode(wrap([1, 2], "device_1", NOW)))

        assert raw == {
            "data": [1, 2],
            "metadata": {
                "lastSyncTime": "2025-01-02T15:30:00.123Z",
                "deviceId": "device_1",
                "version": 1,
            },
        }

    def test_encode_keeps_unicode(self) -> None:
        """Should write non-ASCII text as UTF-8."""
        raw = encode(wrap(["café"], "device_1", NOW))
        assert "café".encode() in raw

    def test_decode_written_by_other_client(self) -> None:
        """Should read an envelope written by another client."""
        raw = (
            b'{"data":[{"id":"t1"}],"metadata":'
            b'{"lastSyncTime":"2025-01-02T15:30:00.000Z","deviceId":"device_x","version":1}}'
        )
        envelope = decode(raw)

        assert envelope.data == [{"id": "t1"}]
        assert envelope.metadata.device_id == "device_x"
        assert envelope.metadata.last_sync_time == datetime(
            2025, 1, 2, 15, 30, tzinfo=timezone.utc
        )

    def test_decode_missing_version_defaults(self) -> None:
        """Should default version to 1."""
        envelope = decode(b'{"data":{},"metadata":{"lastSyncTime":"2025-01-02T15:30:00Z"}}')
        assert envelope.metadata.version == 1
        assert envelope.metadata.device_id == ""

    @pytest.mark.parametrize(
        "raw",
        [
            b"not json",
            b"[1, 2, 3]",
            b'{"data": []}',
            b'{"metadata": {"lastSyncTime": "2025-01-02T15:30:00Z"}}',
            b'{"data": [], "metadata": "soon"}',
            b'{"data": [], "metadata": {}}',
            b'{"data": [], "metadata": {"lastSyncTime": "later"}}',
            b'{"data": [], "metadata": {"lastSyncTime": "2025-01-02T15:30:00Z", "version": "1"}}',
            b"\xff\xfe",
        ],
    )
    def test_decode_rejects_malformed(self, raw: bytes) -> None:
        """Should raise EnvelopeError for anything that is not an envelope."""
        with pytest.raises(EnvelopeError):
            decode(raw)

    def test_envelope_error_is_value_error(self) -> None:
        """Should be catchable as ValueError."""
        assert issubclass(EnvelopeError, ValueError)


class TestDataclasses:
    """Tests for SyncMetadata / SyncEnvelope."""

    def test_metadata_from_dict(self) -> None:
        """Should parse the camelCase keys."""
        metadata = SyncMetadata.from_dict(
            {"lastSyncTime": "1970-01-01T00:00:00.000Z", "deviceId": "d", "version": 1}
        )
        assert metadata.last_sync_time == EPOCH

    def test_envelope_is_frozen(self) -> None:
        """Should not allow mutation."""
        envelope = SyncEnvelope(data=[], metadata=SyncMetadata(EPOCH, "d"))
        with pytest.raises(AttributeError):
            envelope.data = [1]  # type: ignore[misc]
