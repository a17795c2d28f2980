"""
Record codec: wire records <-> table rows.

Side fields (headers, metadata) are stored as JSON text. Encoding and
decoding are best effort: a value that cannot be serialized or parsed
back is dropped with a warning, it never fails the surrounding insert
or query.

Bodies are capped here, unconditionally, at MAX_BODY_BYTES each. The
capture filter applies its own smaller, configurable cap earlier in the
pipeline; this one is the storage layer's last line.
"""

import json
import logging
import sqlite3
from typing import Any

from locallens.schema import LogEntry, LogLevel, NetworkRequestEntry

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 1024 * 1024
TRUNCATION_MARKER = "... [truncated]"


def truncate_utf8(text: str, max_bytes: int, marker: str) -> str:
    """
    Cap text at max_bytes of UTF-8 and append marker when cut.

    Text at or under the cap is returned unchanged. A cut that lands inside
    a multi-byte character drops the partial character.
    """
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    head = encoded[:max_bytes].decode("utf-8", errors="ignore")
    return head + marker


def cap_body(body: str | None) -> str | None:
    """Apply the storage-layer body cap."""
    if body is None:
        return None
    return truncate_utf8(body, MAX_BODY_BYTES, TRUNCATION_MARKER)


def encode_json(value: Any, field: str = "value") -> str | None:
    """Serialize a side field to JSON text, or None if it can't be."""
    if value is None:
        return None
    try:
        return json.dumps(value, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        logger.warning("Dropping %s that failed to serialize: %s", field, e)
        return None


def decode_object(text: str | None, field: str = "value") -> dict[str, Any] | None:
    """Parse JSON text back into an object, or None with a warning."""
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError) as e:
        logger.warning("Dropping %s that failed to parse: %s", field, e)
        return None
    if not isinstance(parsed, dict):
        logger.warning("Dropping %s that is not a JSON object", field)
        return None
    return parsed


# =============================================================================
# Log rows
# =============================================================================


def log_to_row(entry: LogEntry) -> tuple[Any, ...]:
    """Column values for INSERT INTO logs, in LOG_INSERT_COLUMNS order."""
    return (
        entry.timestamp,
        entry.level.value,
        entry.message,
        entry.stack_trace,
        entry.page_url,
        entry.user_agent,
        encode_json(entry.metadata, "log metadata"),
    )


def row_to_log(row: sqlite3.Row) -> LogEntry:
    """Rebuild a LogEntry from a logs row."""
    return LogEntry(
        id=row["id"],
        timestamp=row["timestamp"],
        level=LogLevel(row["level"]),
        message=row["message"],
        stack_trace=row["stack_trace"],
        page_url=row["page_url"],
        user_agent=row["user_agent"],
        metadata=decode_object(row["metadata"], "log metadata"),
    )


# =============================================================================
# Network rows
# =============================================================================


def network_to_row(entry: NetworkRequestEntry) -> tuple[Any, ...]:
    """Column values for INSERT INTO network_requests, in NETWORK_INSERT_COLUMNS order."""
    return (
        entry.request_id,
        entry.timestamp,
        entry.method,
        entry.url,
        encode_json(entry.request_headers, "request headers"),
        encode_json(entry.response_headers, "response headers"),
        entry.request_body,
        entry.response_body,
        entry.status_code,
        entry.duration,
        entry.response_size,
        entry.page_url,
        entry.user_agent,
        encode_json(entry.metadata, "network metadata"),
    )


def cap_network_bodies(entry: NetworkRequestEntry) -> NetworkRequestEntry:
    """Return the entry with both bodies held to MAX_BODY_BYTES."""
    request_body = cap_body(entry.request_body)
    response_body = cap_body(entry.response_body)
    if request_body is entry.request_body and response_body is entry.response_body:
        return entry
    return entry.model_copy(
        update={"request_body": request_body, "response_body": response_body}
    )


def row_to_network(row: sqlite3.Row) -> NetworkRequestEntry:
    """Rebuild a NetworkRequestEntry from a network_requests row."""
    return NetworkRequestEntry(
        id=row["id"],
        request_id=row["request_id"],
        timestamp=row["timestamp"],
        method=row["method"],
        url=row["url"],
        request_headers=decode_object(row["request_headers"], "request headers"),
        response_headers=decode_object(row["response_headers"], "response headers"),
        request_body=row["request_body"],
        response_body=row["response_body"],
        status_code=row["status_code"],
        duration=row["duration"],
        response_size=row["response_size"],
        page_url=row["page_url"],
        user_agent=row["user_agent"],
        metadata=decode_object(row["metadata"], "network metadata"),
    )
