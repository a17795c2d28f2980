"""
Response shaping for agent-facing tool results.

Agents read tool output as tokens, so network records are reduced to the
fields useful for debugging and whole payloads are kept under a size
ceiling. Stored data is never modified; only the response is.
"""

import json
import logging
import math
from typing import Any

from locallens.schema import LogEntry, NetworkRequestEntry, RecordSource

logger = logging.getLogger(__name__)

BODY_PREVIEW_CHARS = 200
MAX_RESPONSE_CHARS = 100_000


def truncate_text(text: str | None, max_chars: int = BODY_PREVIEW_CHARS) -> str | None:
    """Cut text to max_chars, noting how many characters were dropped."""
    if not text:
        return None
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}... [truncated {len(text) - max_chars} chars]"


def _content_type(headers: dict[str, Any] | None) -> str | None:
    if not headers:
        return None
    for key, value in headers.items():
        if key.lower() == "content-type":
            return value
    return None


def minimal_request(entry: NetworkRequestEntry) -> dict[str, Any]:
    """Reduce a network record to its debugging essentials."""
    metadata = entry.metadata or {}
    shaped: dict[str, Any] = {
        "id": entry.id,
        "requestId": entry.request_id,
        "method": entry.method,
        "url": entry.url,
        "statusCode": entry.status_code,
        "timestamp": entry.timestamp,
        "duration": entry.duration,
        "responseSize": entry.response_size,
        "pageUrl": entry.page_url,
        "requestBody": truncate_text(entry.request_body),
        "responseBody": truncate_text(entry.response_body),
        "contentType": _content_type(entry.response_headers),
        "source": metadata.get("source") or RecordSource.BROWSER.value,
        "backendProcess": metadata.get("backendProcess"),
        "correlationId": metadata.get("correlationId"),
        "proxyPort": metadata.get("proxyPort"),
    }
    if entry.status_code is not None and entry.status_code >= 400:
        shaped["isError"] = True
        shaped["errorCategory"] = "server_error" if entry.status_code >= 500 else "client_error"
    return {k: v for k, v in shaped.items() if v is not None}


def log_payload(entries: list[LogEntry]) -> list[dict[str, Any]]:
    """Wire form of log records."""
    return [entry.to_wire() for entry in entries]


def fit_response(data: dict[str, Any], max_chars: int = MAX_RESPONSE_CHARS) -> dict[str, Any]:
    """
    Keep a tool payload under max_chars of JSON.

    When too large, the record list ("requests", "logs" or "chronological")
    is cut proportionally, keeping at least one item, and the payload is
    marked with ``_truncated`` and ``_originalCount``.
    """
    size = len(json.dumps(data, default=str))
    if size <= max_chars:
        return data

    for key in ("requests", "logs", "chronological"):
        items = data.get(key)
        if isinstance(items, list) and items:
            logger.warning("Tool response too large (%d chars), truncating %s", size, key)
            keep = max(1, math.floor(max_chars / (size / len(items))))
            return {
                **data,
                key: items[:keep],
                "_truncated": True,
                "_originalCount": len(items),
            }

    logger.warning("Tool response too large (%d chars) and has no list to trim", size)
    return data
