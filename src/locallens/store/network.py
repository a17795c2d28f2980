"""Network request store."""

import sqlite3
from typing import Any

from locallens.schema import NetworkFilters, NetworkRequestEntry
from locallens.store.base import EventStore, like_pattern, metadata_clauses
from locallens.store.codec import cap_network_bodies, network_to_row, row_to_network


class NetworkStore(EventStore[NetworkRequestEntry, NetworkFilters]):
    """
    Circular buffer of HTTP transactions.

    Queries return newest timestamp first (ties broken by id). Search
    matches the URL, both header maps (as stored JSON) and both bodies.
    Request and response bodies are each capped at 1 MiB on the way in.
    """

    table = "network_requests"
    entry_type = NetworkRequestEntry
    filters_type = NetworkFilters
    insert_columns = (
        "request_id",
        "timestamp",
        "method",
        "url",
        "request_headers",
        "response_headers",
        "request_body",
        "response_body",
        "status_code",
        "duration",
        "response_size",
        "page_url",
        "user_agent",
        "metadata",
    )
    search_columns = (
        "url",
        "request_headers",
        "response_headers",
        "request_body",
        "response_body",
    )
    order_by = "timestamp DESC, id DESC"

    def _to_row(self, entry: NetworkRequestEntry) -> tuple[Any, ...]:
        return network_to_row(entry)

    def _from_row(self, row: sqlite3.Row) -> NetworkRequestEntry:
        return row_to_network(row)

    def _prepare(self, entry: NetworkRequestEntry) -> NetworkRequestEntry:
        return cap_network_bodies(entry)

    def _filter_clauses(self, filters: NetworkFilters) -> tuple[list[str], list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []

        if filters.method:
            clauses.append("UPPER(method) = UPPER(?)")
            params.append(filters.method)
        if filters.url:
            clauses.append("url LIKE ? ESCAPE '\\'")
            params.append(like_pattern(filters.url))
        if filters.status_code is not None:
            clauses.append("status_code = ?")
            params.append(filters.status_code)
        if filters.start_time:
            clauses.append("timestamp >= ?")
            params.append(filters.start_time)
        if filters.end_time:
            clauses.append("timestamp <= ?")
            params.append(filters.end_time)

        meta_clauses, meta_params = metadata_clauses(filters)
        return clauses + meta_clauses, params + meta_params

    def get_by_request_id(self, request_id: str) -> NetworkRequestEntry | None:
        """
        Look up a record by its producer-assigned request id.

        Request ids are not unique; the most recently stored match wins.
        """
        rows = self._select(
            f"SELECT * FROM {self.table} WHERE request_id = ? ORDER BY id DESC LIMIT 1",
            [request_id],
            "get_by_request_id",
        )
        return self._from_row(rows[0]) if rows else None
