"""
SQLite database handle and schema for LocalLens.

The Database object owns the single sqlite3 connection that both event
stores share. It is an explicit resource: open it at process start, pass
it to the stores, close it on shutdown (or use it as a context manager).

Tables:
    - logs: console lines, one row per LogEntry
    - network_requests: HTTP transactions, one row per NetworkRequestEntry

Both tables carry a created_at default-timestamp column and secondary
indexes on timestamp plus the columns queries filter on most.

Threading:
    The connection is opened with check_same_thread=False and every
    statement group runs under ``guard()``. A transaction holds the guard
    from its first statement to its commit or rollback, so transactions
    started by different stores never interleave on the shared handle.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

from locallens.errors import StorageConnectionError, StorageWriteError

logger = logging.getLogger(__name__)

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    level TEXT NOT NULL,
    message TEXT NOT NULL,
    stack_trace TEXT,
    page_url TEXT NOT NULL,
    user_agent TEXT,
    metadata TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON logs(timestamp);
CREATE INDEX IF NOT EXISTS idx_logs_level ON logs(level);
CREATE INDEX IF NOT EXISTS idx_logs_page_url ON logs(page_url);

CREATE TABLE IF NOT EXISTS network_requests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    request_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    method TEXT NOT NULL,
    url TEXT NOT NULL,
    request_headers TEXT,
    response_headers TEXT,
    request_body TEXT,
    response_body TEXT,
    status_code INTEGER,
    duration REAL,
    response_size INTEGER,
    page_url TEXT NOT NULL,
    user_agent TEXT,
    metadata TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_net_timestamp ON network_requests(timestamp);
CREATE INDEX IF NOT EXISTS idx_net_method ON network_requests(method);
CREATE INDEX IF NOT EXISTS idx_net_url ON network_requests(url);
CREATE INDEX IF NOT EXISTS idx_net_page_url ON network_requests(page_url);
CREATE INDEX IF NOT EXISTS idx_net_request_id ON network_requests(request_id);
"""

TABLES = ("logs", "network_requests")


class Database:
    """
    Shared SQLite handle for the event stores.

    Usage:
        db = Database("locallens.db")
        db.initialize()
        ...
        db.close()

    Or use as context manager:
        with Database(":memory:") as db:
            ...
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Open the database connection.

        Args:
            db_path: Path to the SQLite file, or ":memory:".
                     Parent directories are created as needed.
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None
        self._guard = threading.RLock()
        self._init_lock = threading.Lock()
        self._initialized = False
        self._connect()

    def _connect(self) -> None:
        """Establish the database connection."""
        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            try:
                self._conn.execute("PRAGMA journal_mode = WAL")
            except sqlite3.OperationalError:
                self._conn.execute("PRAGMA journal_mode = DELETE")
            self._conn.execute("PRAGMA synchronous = NORMAL")
        except (sqlite3.Error, OSError) as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    @property
    def conn(self) -> sqlite3.Connection:
        """The open connection. Callers must hold ``guard()``."""
        if self._conn is None:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connection",
                message="Database is closed",
            )
        return self._conn

    def initialize(self) -> None:
        """
        Create tables and indexes if they don't exist.

        Idempotent and safe to call concurrently; only the first call
        touches the database.

        Raises:
            StorageWriteError: If the schema can't be created
        """
        with self._init_lock:
            if self._initialized:
                return
            try:
                with self.guard():
                    self.conn.executescript(CREATE_TABLES_SQL)
                    self.conn.commit()
            except sqlite3.Error as e:
                raise StorageWriteError(
                    operation="initialize",
                    underlying_error=str(e),
                ) from e
            self._initialized = True
            logger.info("Database initialized at %s", self.db_path)

    @property
    def initialized(self) -> bool:
        """Whether initialize() has completed."""
        return self._initialized

    @contextmanager
    def guard(self) -> Generator[sqlite3.Connection, None, None]:
        """Hold exclusive use of the connection for a group of statements."""
        with self._guard:
            yield self.conn

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Run a block as one transaction on the shared connection.

        Commits on normal exit. Any exception rolls the transaction back
        before it propagates.
        """
        with self.guard() as conn:
            try:
                yield conn
                conn.commit()
            except BaseException:
                conn.rollback()
                raise

    def count(self, table: str) -> int:
        """Row count for one of the known tables."""
        if table not in TABLES:
            msg = f"Unknown table: {table}"
            raise ValueError(msg)
        with self.guard() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()
        return int(row["count"])

    def close(self) -> None:
        """Close the database connection."""
        with self._guard:
            if self._conn:
                self._conn.close()
                self._conn = None

    @property
    def closed(self) -> bool:
        """Whether close() has been called."""
        return self._conn is None

    def __enter__(self) -> "Database":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()
