"""
Unit tests for the record codec.

Tests cover:
- UTF-8 byte truncation at the storage cap
- Best-effort JSON encode/decode of side fields, including NaN/Infinity
- Row conversion for both record types
"""

import logging
import sqlite3

import pytest

from locallens.schema import LogEntry, LogLevel, NetworkRequestEntry
from locallens.store.codec import (
    MAX_BODY_BYTES,
    TRUNCATION_MARKER,
    cap_body,
    cap_network_bodies,
    decode_object,
    encode_json,
    truncate_utf8,
)


class TestTruncateUtf8:
    """Tests for byte-based truncation."""

    def test_under_limit_unchanged(self) -> None:
        """Short text is returned as is."""
        text = "hello"
        assert truncate_utf8(text, 10, "...") is text

    def test_exact_limit_unchanged(self) -> None:
        """Text at exactly the limit is not cut."""
        assert truncate_utf8("abcde", 5, "!") == "abcde"

    def test_over_limit_cut(self) -> None:
        """Text over the limit keeps max_bytes plus the marker."""
        assert truncate_utf8("abcdef", 5, "!") == "abcde!"

    def test_multibyte_boundary(self) -> None:
        """A cut inside a multi-byte character drops the partial character."""
        # each "é" is two bytes
        result = truncate_utf8("ééé", 3, "~")
        assert result == "é~"


class TestCapBody:
    """Tests for the 1 MiB storage cap."""

    def test_none_passthrough(self) -> None:
        """Missing bodies stay missing."""
        assert cap_body(None) is None

    def test_exactly_one_mebibyte_unchanged(self) -> None:
        """A body of exactly 1,048,576 bytes round-trips unchanged."""
        body = "a" * MAX_BODY_BYTES
        assert cap_body(body) == body

    def test_one_byte_over_truncated(self) -> None:
        """One byte over is cut to the cap plus the marker."""
        body = "a" * (MAX_BODY_BYTES + 1)
        capped = cap_body(body)
        assert capped is not None
        assert capped.endswith(TRUNCATION_MARKER)
        assert len(capped.encode("utf-8")) == MAX_BODY_BYTES + len(TRUNCATION_MARKER)

    def test_network_bodies_capped_independently(self) -> None:
        """Request and response bodies each get the cap."""
        entry = NetworkRequestEntry(
            request_id="r",
            timestamp="t",
            method="POST",
            url="u",
            page_url="p",
            request_body="x" * (MAX_BODY_BYTES + 10),
            response_body="small",
        )
        capped = cap_network_bodies(entry)
        assert capped.request_body is not None
        assert capped.request_body.endswith(TRUNCATION_MARKER)
        assert capped.response_body == "small"

    def test_network_entry_unchanged_when_small(self) -> None:
        """No copy is made when nothing needs cutting."""
        entry = NetworkRequestEntry(request_id="r", timestamp="t", method="GET", url="u", page_url="p")
        assert cap_network_bodies(entry) is entry


class TestJsonSideFields:
    """Tests for best-effort JSON handling."""

    def test_encode_roundtrip(self) -> None:
        """Objects survive encode then decode."""
        value = {"source": "backend-console", "n": 1}
        assert decode_object(encode_json(value)) == value

    def test_encode_none(self) -> None:
        """None encodes to NULL."""
        assert encode_json(None) is None

    def test_encode_unserializable(self, caplog: pytest.LogCaptureFixture) -> None:
        """Values json can't handle are dropped with a warning."""
        with caplog.at_level(logging.WARNING):
            assert encode_json({"x": object()}, "metadata") is None
        assert "metadata" in caplog.text

    def test_encode_non_finite(self, caplog: pytest.LogCaptureFixture) -> None:
        """NaN and Infinity are not JSON, so the field is dropped."""
        with caplog.at_level(logging.WARNING):
            assert encode_json({"x": float("nan")}, "metadata") is None
            assert encode_json({"x": float("inf")}, "metadata") is None
        assert "metadata" in caplog.text

    def test_decode_garbage(self, caplog: pytest.LogCaptureFixture) -> None:
        """Unparseable text decodes to None with a warning."""
        with caplog.at_level(logging.WARNING):
            assert decode_object("{not json", "metadata") is None
        assert "failed to parse" in caplog.text

    def test_decode_non_object(self) -> None:
        """JSON that isn't an object is dropped."""
        assert decode_object("[1, 2]") is None


class TestRowConversion:
    """Tests for row <-> model conversion through SQLite."""

    def test_log_roundtrip(self, log_store) -> None:
        """A stored log reads back equal apart from its id."""
        entry = LogEntry(
            timestamp="2024-01-01T00:00:00Z",
            level=LogLevel.ERROR,
            message="boom",
            stack_trace="at f()",
            page_url="https://a.test/",
            metadata={"source": "browser"},
        )
        stored = log_store.insert([entry])[0]
        fetched = log_store.get_by_id(stored.id)
        assert fetched == stored
        assert fetched.metadata == {"source": "browser"}

    def test_corrupt_metadata_reads_as_none(self, log_store, db) -> None:
        """A bad metadata column never fails the read."""
        stored = log_store.insert([
            LogEntry(timestamp="t", level=LogLevel.LOG, message="m", page_url="p", metadata={"a": 1})
        ])[0]
        with db.transaction() as conn:
            conn.execute("UPDATE logs SET metadata = '{oops' WHERE id = ?", (stored.id,))
        fetched = log_store.get_by_id(stored.id)
        assert fetched is not None
        assert fetched.metadata is None

    def test_non_finite_metadata_keeps_filters_working(self, log_store) -> None:
        """A record with NaN metadata is stored without it and filters still run."""
        log_store.insert([
            LogEntry(timestamp="t", level=LogLevel.LOG, message="m", page_url="p", metadata={"x": float("nan")})
        ])
        filtered = log_store.query(10, 0, {"source": "browser"})
        assert len(filtered) == 1
        assert filtered[0].metadata is None

    def test_row_factory_is_row(self, db) -> None:
        """Rows are addressable by column name."""
        with db.guard() as conn:
            row = conn.execute("SELECT 1 AS one").fetchone()
        assert isinstance(row, sqlite3.Row)
        assert row["one"] == 1
