"""
Pytest configuration and fixtures for LocalLens tests.

This module provides shared fixtures used across unit and integration
tests: temporary databases, stores, a full service, and record factories.
"""

import tempfile
from pathlib import Path
from typing import Any, Callable, Generator

import pytest

from locallens.service import LensService
from locallens.settings import Settings
from locallens.store import Database, LogStore, NetworkStore


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db(temp_dir: Path) -> Generator[Database, None, None]:
    """An initialized database in a temporary file."""
    database = Database(temp_dir / "test.db")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def log_store(db: Database) -> LogStore:
    """A log store on the temporary database."""
    return LogStore(db)


@pytest.fixture
def network_store(db: Database) -> NetworkStore:
    """A network store on the temporary database."""
    return NetworkStore(db)


@pytest.fixture
def settings(temp_dir: Path) -> Settings:
    """Settings pointing at a temporary database, with echo off."""
    return Settings(db_path=temp_dir / "service.db", echo_events=False, port=8765)


@pytest.fixture
def service(settings: Settings) -> Generator[LensService, None, None]:
    """A full LocalLens service."""
    svc = LensService(settings)
    yield svc
    svc.close()


@pytest.fixture
def make_log() -> Callable[..., dict[str, Any]]:
    """Factory for wire-format log records."""
    counter = iter(range(1, 1_000_000))

    def factory(**overrides: Any) -> dict[str, Any]:
        n = next(counter)
        record = {
            "timestamp": f"2024-01-01T00:00:{n % 60:02d}.{n:06d}Z",
            "level": "log",
            "message": f"message {n}",
            "pageUrl": "https://app.example.com/page",
        }
        record.update(overrides)
        return record

    return factory


@pytest.fixture
def make_request() -> Callable[..., dict[str, Any]]:
    """Factory for wire-format network records."""
    counter = iter(range(1, 1_000_000))

    def factory(**overrides: Any) -> dict[str, Any]:
        n = next(counter)
        record = {
            "requestId": f"req-{n}",
            "timestamp": f"2024-01-01T00:{n // 60 % 60:02d}:{n % 60:02d}.000Z",
            "method": "GET",
            "url": f"https://api.example.com/items/{n}",
            "statusCode": 200,
            "pageUrl": "https://app.example.com/page",
        }
        record.update(overrides)
        return record

    return factory
