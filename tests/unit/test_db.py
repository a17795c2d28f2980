"""
Unit tests for the shared database handle.

Tests cover:
- Schema creation and idempotent initialization
- Concurrent initialization
- Transactions (commit, rollback)
- Lifecycle (close, context manager)
"""

import sqlite3
import threading
from pathlib import Path

import pytest

from locallens.errors import StorageConnectionError
from locallens.store import Database


class TestInitialization:
    """Tests for schema creation."""

    def test_creates_tables_and_indexes(self, db: Database) -> None:
        """Both tables and their indexes exist."""
        with db.guard() as conn:
            names = {
                row["name"]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type IN ('table', 'index')")
            }
        assert {"logs", "network_requests"} <= names
        assert {"idx_logs_timestamp", "idx_logs_level", "idx_net_timestamp", "idx_net_request_id"} <= names

    def test_created_at_default(self, db: Database) -> None:
        """Rows get a created_at timestamp."""
        with db.transaction() as conn:
            conn.execute(
                "INSERT INTO logs (timestamp, level, message, page_url) VALUES ('t', 'log', 'm', 'p')"
            )
        with db.guard() as conn:
            row = conn.execute("SELECT created_at FROM logs").fetchone()
        assert row["created_at"]

    def test_initialize_idempotent(self, db: Database) -> None:
        """Initializing twice keeps existing data."""
        with db.transaction() as conn:
            conn.execute(
                "INSERT INTO logs (timestamp, level, message, page_url) VALUES ('t', 'log', 'm', 'p')"
            )
        db.initialize()
        assert db.count("logs") == 1

    def test_concurrent_initialize(self, temp_dir: Path) -> None:
        """Many threads initializing at once all succeed."""
        database = Database(temp_dir / "concurrent.db")
        errors: list[Exception] = []

        def init() -> None:
            try:
                database.initialize()
            except Exception as e:  # pragma: no cover - failure path
                errors.append(e)

        threads = [threading.Thread(target=init) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert database.initialized
        database.close()

    def test_reopen_existing_file(self, temp_dir: Path) -> None:
        """Data persists across handles on the same file."""
        path = temp_dir / "persist.db"
        with Database(path) as first:
            first.initialize()
            with first.transaction() as conn:
                conn.execute(
                    "INSERT INTO logs (timestamp, level, message, page_url) VALUES ('t', 'log', 'm', 'p')"
                )
        with Database(path) as second:
            second.initialize()
            assert second.count("logs") == 1

    def test_creates_parent_directory(self, temp_dir: Path) -> None:
        """Missing parent directories are created."""
        path = temp_dir / "a" / "b" / "x.db"
        with Database(path) as database:
            database.initialize()
        assert path.exists()

    def test_memory_database(self) -> None:
        """:memory: works for throwaway stores."""
        with Database(":memory:") as database:
            database.initialize()
            assert database.count("network_requests") == 0


class TestTransactions:
    """Tests for commit and rollback."""

    def test_rollback_on_error(self, db: Database) -> None:
        """An exception inside the block discards its writes."""
        with pytest.raises(RuntimeError):
            with db.transaction() as conn:
                conn.execute(
                    "INSERT INTO logs (timestamp, level, message, page_url) VALUES ('t', 'log', 'm', 'p')"
                )
                raise RuntimeError("abort")
        assert db.count("logs") == 0

    def test_sqlite_error_rolls_back(self, db: Database) -> None:
        """A failing statement rolls back earlier ones in the block."""
        with pytest.raises(sqlite3.IntegrityError):
            with db.transaction() as conn:
                conn.execute(
                    "INSERT INTO logs (timestamp, level, message, page_url) VALUES ('t', 'log', 'm', 'p')"
                )
                conn.execute("INSERT INTO logs (timestamp) VALUES (NULL)")
        assert db.count("logs") == 0

    def test_count_unknown_table(self, db: Database) -> None:
        """Only known tables can be counted."""
        with pytest.raises(ValueError):
            db.count("sqlite_master; DROP TABLE logs")


class TestLifecycle:
    """Tests for close and context manager."""

    def test_close(self, temp_dir: Path) -> None:
        """Closed handles refuse further use."""
        database = Database(temp_dir / "x.db")
        database.close()
        assert database.closed
        with pytest.raises(StorageConnectionError):
            _ = database.conn

    def test_close_twice(self, temp_dir: Path) -> None:
        """close() is safe to repeat."""
        database = Database(temp_dir / "x.db")
        database.close()
        database.close()
        assert database.closed
