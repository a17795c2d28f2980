"""
Storage module for LocalLens.

This module provides the SQLite-backed event stores for captured console
logs and network requests.

Components:
    - Database: the shared connection and schema (logs, network_requests)
    - LogStore / NetworkStore: size-bounded tables with filtered reads,
      substring search and change notification
    - IngestionSerializer: FIFO gate for each store's writes
    - ChangeNotifier: fan-out of newly stored records

Design principles:
    - Bounded: each table holds at most max_entries rows, oldest evicted first
    - Atomic: a batch is stored entirely or not at all
    - Forgiving: a bad record is skipped, a bad batch is not
"""

from locallens.store.base import MAX_ENTRIES, EventStore, sanitize_limit, sanitize_offset
from locallens.store.codec import MAX_BODY_BYTES, TRUNCATION_MARKER
from locallens.store.db import Database
from locallens.store.logs import LogStore
from locallens.store.network import NetworkStore
from locallens.store.notifier import ChangeNotifier
from locallens.store.serializer import IngestionSerializer

__all__ = [
    "MAX_BODY_BYTES",
    "MAX_ENTRIES",
    "TRUNCATION_MARKER",
    "ChangeNotifier",
    "Database",
    "EventStore",
    "IngestionSerializer",
    "LogStore",
    "NetworkStore",
    "sanitize_limit",
    "sanitize_offset",
]
