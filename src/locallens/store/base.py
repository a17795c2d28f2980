"""
Event store base: the insert/query/search/clear contract shared by the
log store and the network store.

Insert pipeline for one batch:
    1. Each record is validated on its own; invalid ones are skipped
       with a warning, they never fail the batch.
    2. Under the store's IngestionSerializer, one transaction inserts the
       valid records and evicts the oldest rows past max_entries.
    3. After the commit, the ChangeNotifier publishes each stored record.

A database error anywhere in step 2 rolls the whole batch back and is
raised as StorageWriteError; nothing from that batch is left committed.

Reads (query, search, point lookups) do not queue behind the serializer.
They see the last committed state of the table.
"""

import logging
import math
import sqlite3
from collections.abc import Iterable, Mapping
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from locallens.errors import StorageReadError, StorageWriteError, ValidationError
from locallens.schema import EntryModel, FilterModel, SearchFilters
from locallens.store.db import Database
from locallens.store.notifier import ChangeNotifier
from locallens.store.serializer import IngestionSerializer

logger = logging.getLogger(__name__)

MAX_ENTRIES = 10_000
DEFAULT_LIMIT = 100
# SQLite binds LIMIT/OFFSET as 64-bit integers
MAX_PAGE = 2**31 - 1

E = TypeVar("E", bound=EntryModel)
F = TypeVar("F", bound=FilterModel)


def sanitize_limit(limit: Any, default: int = DEFAULT_LIMIT) -> int:
    """Coerce a page size; non-numeric, NaN or negative input gives default."""
    try:
        value = float(limit)
    except (TypeError, ValueError):
        return default
    if math.isnan(value) or value < 0:
        return default
    return int(min(value, MAX_PAGE))


def sanitize_offset(offset: Any) -> int:
    """Coerce a page offset; non-numeric, NaN or negative input gives 0."""
    return sanitize_limit(offset, default=0)


def like_pattern(text: str) -> str:
    """Wrap text in LIKE wildcards, matching its own % and _ literally."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def metadata_clauses(filters: Any) -> tuple[list[str], list[Any]]:
    """WHERE fragments for the metadata-backed filters a filter model carries."""
    clauses: list[str] = []
    params: list[Any] = []
    source = getattr(filters, "source", None)
    if source:
        clauses.append("COALESCE(json_extract(metadata, '$.source'), 'browser') = ?")
        params.append(source)
    backend_process = getattr(filters, "backend_process", None)
    if backend_process:
        clauses.append("json_extract(metadata, '$.backendProcess') = ?")
        params.append(backend_process)
    correlation_id = getattr(filters, "correlation_id", None)
    if correlation_id:
        clauses.append("json_extract(metadata, '$.correlationId') = ?")
        params.append(correlation_id)
    return clauses, params


class EventStore(Generic[E, F]):
    """
    Size-bounded, append-only table of one record type.

    Subclasses set the class attributes below and implement the row
    conversions and filter clauses.

    Attributes:
        db: Shared database handle
        max_entries: Circular-buffer capacity
        serializer: Gate for this store's mutating operations
        notifier: Fan-out of newly stored records
    """

    table: ClassVar[str]
    entry_type: ClassVar[type[EntryModel]]
    filters_type: ClassVar[type[FilterModel]]
    insert_columns: ClassVar[tuple[str, ...]]
    search_columns: ClassVar[tuple[str, ...]]
    order_by: ClassVar[str]

    def __init__(self, db: Database, max_entries: int = MAX_ENTRIES) -> None:
        """
        Bind the store to a database, creating the schema if needed.

        Args:
            db: Open database handle (shared with the other store)
            max_entries: Maximum rows kept in this store's table
        """
        if max_entries < 1:
            msg = "max_entries must be at least 1"
            raise ValueError(msg)
        self.db = db
        self.max_entries = max_entries
        self.serializer = IngestionSerializer(self.table)
        self.notifier: ChangeNotifier[E] = ChangeNotifier(self.table)
        db.initialize()

    # =========================================================================
    # Hooks
    # =========================================================================

    def _to_row(self, entry: E) -> tuple[Any, ...]:
        raise NotImplementedError

    def _from_row(self, row: sqlite3.Row) -> E:
        raise NotImplementedError

    def _filter_clauses(self, filters: F) -> tuple[list[str], list[Any]]:
        raise NotImplementedError

    def _prepare(self, entry: E) -> E:
        """Last adjustment before a valid entry is written."""
        return entry

    # =========================================================================
    # Writes
    # =========================================================================

    def _coerce(self, record: Any) -> E | None:
        """Validate one incoming record; None means skip it."""
        if isinstance(record, self.entry_type):
            entry = record
        elif isinstance(record, Mapping):
            try:
                entry = self.entry_type.model_validate(record)
            except PydanticValidationError as e:
                logger.warning(
                    "Skipping %s record that failed validation: %s",
                    self.table,
                    e.errors(include_url=False),
                )
                return None
        else:
            logger.warning("Skipping %s record that is not an object", self.table)
            return None

        missing = entry.missing_fields()
        if missing:
            logger.warning(
                "Skipping %s record with missing required fields: %s",
                self.table,
                ", ".join(missing),
            )
            return None
        return self._prepare(entry)  # type: ignore[arg-type]

    def insert(self, records: Iterable[Any]) -> list[E]:
        """
        Store a batch of records.

        Args:
            records: Entries or mappings in wire (camelCase) or attribute form

        Returns:
            The records actually stored, with ids assigned, in input order.
            May be shorter than the input; skipped records are logged.

        Raises:
            StorageWriteError: If the transaction failed (batch rolled back)
        """
        candidates = [c for c in (self._coerce(r) for r in records) if c is not None]
        if not candidates:
            return []

        stored = self.serializer.with_lock(self._insert_batch, candidates)

        for entry in stored:
            self.notifier.publish(entry)
        return stored

    def _insert_batch(self, candidates: list[E]) -> list[E]:
        """Insert and evict in one transaction. Caller holds the serializer."""
        columns = ", ".join(self.insert_columns)
        placeholders = ", ".join("?" for _ in self.insert_columns)
        sql = f"INSERT INTO {self.table} ({columns}) VALUES ({placeholders})"

        stored: list[E] = []
        try:
            with self.db.transaction() as conn:
                for entry in candidates:
                    cursor = conn.execute(sql, self._to_row(entry))
                    stored.append(entry.model_copy(update={"id": cursor.lastrowid}))
                evicted = self._evict(conn)
        except sqlite3.Error as e:
            logger.exception("Failed to insert %d %s records", len(candidates), self.table)
            raise StorageWriteError(
                operation=f"insert_{self.table}",
                underlying_error=str(e),
            ) from e

        if evicted:
            logger.info("Evicted %d old %s rows to stay within %d", evicted, self.table, self.max_entries)
        return stored

    def _evict(self, conn: sqlite3.Connection) -> int:
        """Delete the oldest rows beyond max_entries; returns how many."""
        count = conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]
        excess = count - self.max_entries
        if excess <= 0:
            return 0
        conn.execute(
            f"DELETE FROM {self.table} WHERE id IN ("
            f"SELECT id FROM {self.table} ORDER BY id ASC LIMIT ?)",
            (excess,),
        )
        return excess

    def clear(self) -> int:
        """
        Delete every row.

        Returns:
            The number of rows that existed before the delete
        """
        return self.serializer.with_lock(self._clear)

    def _clear(self) -> int:
        try:
            with self.db.transaction() as conn:
                count = conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]
                conn.execute(f"DELETE FROM {self.table}")
        except sqlite3.Error as e:
            logger.exception("Failed to clear %s", self.table)
            raise StorageWriteError(
                operation=f"clear_{self.table}",
                underlying_error=str(e),
            ) from e
        logger.info("Cleared %d %s rows", count, self.table)
        return int(count)

    # =========================================================================
    # Reads
    # =========================================================================

    def _coerce_filters(self, filters: F | Mapping[str, Any] | None, model: type[BaseModel]) -> Any:
        if filters is None:
            return model()
        if isinstance(filters, model):
            return filters
        try:
            return model.model_validate(filters)
        except PydanticValidationError as e:
            first = e.errors(include_url=False)[0]
            raise ValidationError(
                field=".".join(str(p) for p in first["loc"]) or None,
                message=f"Invalid filter: {first['msg']}",
            ) from e

    def _select(self, sql: str, params: list[Any], operation: str) -> list[sqlite3.Row]:
        try:
            with self.db.guard() as conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.exception("Failed to read %s (%s)", self.table, operation)
            raise StorageReadError(
                operation=f"{operation}_{self.table}",
                underlying_error=str(e),
            ) from e

    def query(
        self,
        limit: Any = DEFAULT_LIMIT,
        offset: Any = 0,
        filters: F | Mapping[str, Any] | None = None,
    ) -> list[E]:
        """
        Page through records matching all given filters, newest first.

        Args:
            limit: Page size (sanitized; bad values fall back to 100)
            offset: Rows to skip (sanitized; bad values fall back to 0)
            filters: Filter model or mapping of filter fields

        Returns:
            Matching records
        """
        parsed = self._coerce_filters(filters, self.filters_type)
        clauses, params = self._filter_clauses(parsed)
        sql = f"SELECT * FROM {self.table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY {self.order_by} LIMIT ? OFFSET ?"
        params.extend([sanitize_limit(limit), sanitize_offset(offset)])
        return [self._from_row(row) for row in self._select(sql, params, "query")]

    def search(
        self,
        query: str | None,
        limit: Any = DEFAULT_LIMIT,
        filters: SearchFilters | Mapping[str, Any] | None = None,
    ) -> list[E]:
        """
        Case-insensitive substring search across the store's text columns.

        An empty query matches everything. Results are newest first.
        """
        parsed = self._coerce_filters(filters, SearchFilters)
        pattern = like_pattern(query or "")
        matches = " OR ".join(f"{col} LIKE ? ESCAPE '\\'" for col in self.search_columns)
        clauses = [f"({matches})"]
        params: list[Any] = [pattern] * len(self.search_columns)

        meta_clauses, meta_params = metadata_clauses(parsed)
        clauses.extend(meta_clauses)
        params.extend(meta_params)

        sql = (
            f"SELECT * FROM {self.table} WHERE {' AND '.join(clauses)} "
            f"ORDER BY {self.order_by} LIMIT ?"
        )
        params.append(sanitize_limit(limit))
        return [self._from_row(row) for row in self._select(sql, params, "search")]

    def get_by_id(self, entry_id: Any) -> E | None:
        """Look up one record by id; None when absent."""
        try:
            key = int(entry_id)
        except (TypeError, ValueError):
            return None
        rows = self._select(f"SELECT * FROM {self.table} WHERE id = ?", [key], "get")
        return self._from_row(rows[0]) if rows else None

    def count(self) -> int:
        """Current row count."""
        try:
            return self.db.count(self.table)
        except sqlite3.Error as e:
            raise StorageReadError(
                operation=f"count_{self.table}",
                underlying_error=str(e),
            ) from e

    def __repr__(self) -> str:
        """String representation of the store."""
        return f"<{self.__class__.__name__}: {self.table} max={self.max_entries}>"
