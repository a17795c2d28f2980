"""Console log store."""

import sqlite3
from typing import Any

from locallens.schema import LogEntry, LogFilters
from locallens.store.base import EventStore, like_pattern, metadata_clauses
from locallens.store.codec import log_to_row, row_to_log


class LogStore(EventStore[LogEntry, LogFilters]):
    """
    Circular buffer of console log lines.

    Queries return newest id first. Search matches message and stack trace.

    Usage:
        store = LogStore(db)
        stored = store.insert([{"timestamp": "...", "level": "error", ...}])
        errors = store.query(limit=20, filters=LogFilters(level=LogLevel.ERROR))
    """

    table = "logs"
    entry_type = LogEntry
    filters_type = LogFilters
    insert_columns = (
        "timestamp",
        "level",
        "message",
        "stack_trace",
        "page_url",
        "user_agent",
        "metadata",
    )
    search_columns = ("message", "stack_trace")
    order_by = "id DESC"

    def _to_row(self, entry: LogEntry) -> tuple[Any, ...]:
        return log_to_row(entry)

    def _from_row(self, row: sqlite3.Row) -> LogEntry:
        return row_to_log(row)

    def _filter_clauses(self, filters: LogFilters) -> tuple[list[str], list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []

        if filters.level:
            clauses.append("level = ?")
            params.append(filters.level.value)
        if filters.url:
            clauses.append("page_url LIKE ? ESCAPE '\\'")
            params.append(like_pattern(filters.url))
        if filters.start_time:
            clauses.append("timestamp >= ?")
            params.append(filters.start_time)
        if filters.end_time:
            clauses.append("timestamp <= ?")
            params.append(filters.end_time)

        meta_clauses, meta_params = metadata_clauses(filters)
        return clauses + meta_clauses, params + meta_params
