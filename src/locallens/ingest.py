"""
Ingestion pipeline: from a producer's batch payload to stored records.

This is the layer the HTTP adapter calls. It owns the concerns that sit
in front of the stores:
    1. Batch shape: the payload must carry a list under "logs" or
       "requests", otherwise the whole request is rejected
    2. Self-traffic suppression: LocalLens's own requests, extension pages
       and (optionally) static assets never reach the network store
    3. Capture filter: the current CaptureConfig decides and strips
    4. Echo: accepted records are written to the process log

Per-record validity (empty message, missing url, ...) is the store's
business; records that fail it are counted in ``received`` but not in
``stored``.
"""

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

from pydantic import ValidationError as PydanticValidationError

from locallens.capture import CaptureFilter, apply_field_policy, evaluate
from locallens.errors import BatchValidationError
from locallens.schema import LogEntry, LogLevel, NetworkRequestEntry
from locallens.store import LogStore, NetworkStore

logger = logging.getLogger(__name__)

STATIC_ASSET_PATTERN = re.compile(
    r"\.(png|jpe?g|gif|svg|ico|webp|woff2?|ttf|otf|eot|css|js|map)$",
    re.IGNORECASE,
)

_LEVEL_TO_LOGGING = {
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARN: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.LOG: logging.INFO,
}


@dataclass(frozen=True)
class IngestResult:
    """
    Outcome of one batch.

    Attributes:
        received: Records in the payload
        stored: Records that made it into the store
    """

    received: int
    stored: int

    def to_dict(self) -> dict[str, int]:
        """Wire shape: {"received": N, "stored": M}."""
        return {"received": self.received, "stored": self.stored}


def extract_batch(payload: Any, key: str) -> list[Any]:
    """
    Pull the record list out of a batch payload.

    Raises:
        BatchValidationError: If payload isn't an object with a list at key
    """
    if not isinstance(payload, Mapping):
        raise BatchValidationError(field=key, message="Invalid batch format: body must be an object")
    records = payload.get(key)
    if not isinstance(records, list):
        raise BatchValidationError(field=key)
    return records


def _host(url: str) -> str:
    try:
        return urlsplit(url).hostname or url
    except ValueError:
        return url


class IngestPipeline:
    """
    Front door for producer batches.

    Usage:
        pipeline = IngestPipeline(log_store, network_store, capture_filter)
        result = pipeline.ingest_logs({"logs": [...]})
        result.to_dict()  # {"received": 3, "stored": 2}
    """

    def __init__(
        self,
        log_store: LogStore,
        network_store: NetworkStore,
        capture_filter: CaptureFilter,
        ignored_url_markers: Sequence[str] = (),
        ignored_page_prefixes: Sequence[str] = ("chrome-extension://",),
        skip_static_assets: bool = True,
        echo_events: bool = False,
    ) -> None:
        self.log_store = log_store
        self.network_store = network_store
        self.capture_filter = capture_filter
        self.ignored_url_markers = tuple(ignored_url_markers)
        self.ignored_page_prefixes = tuple(ignored_page_prefixes)
        self.skip_static_assets = skip_static_assets
        self.echo_events = echo_events

    # =========================================================================
    # Console logs
    # =========================================================================

    def ingest_logs(self, payload: Any) -> IngestResult:
        """
        Store a {"logs": [...]} batch.

        Raises:
            BatchValidationError: Malformed batch shape
            StorageError: Transaction failed
        """
        records = extract_batch(payload, "logs")
        stored = self.log_store.insert(records)
        if self.echo_events:
            for entry in stored:
                self._echo_log(entry)
        return IngestResult(received=len(records), stored=len(stored))

    def _echo_log(self, entry: LogEntry) -> None:
        text = entry.message
        if entry.stack_trace and entry.level == LogLevel.ERROR:
            text = f"{text}\n{entry.stack_trace}"
        logger.log(
            _LEVEL_TO_LOGGING[entry.level],
            "[%s] %s - %s",
            _host(entry.page_url),
            entry.timestamp,
            text,
        )

    # =========================================================================
    # Network requests
    # =========================================================================

    def ingest_network(self, payload: Any) -> IngestResult:
        """
        Filter and store a {"requests": [...]} batch.

        Raises:
            BatchValidationError: Malformed batch shape
            StorageError: Transaction failed
        """
        records = extract_batch(payload, "requests")

        eligible: list[NetworkRequestEntry] = []
        config = self.capture_filter.config
        for record in records:
            entry = self._parse_network(record)
            if entry is None or self.is_self_traffic(entry):
                continue
            decision = evaluate(config, entry)
            if not decision.captured:
                logger.debug("Not capturing %s %s: %s", entry.method, entry.url, decision.reason)
                continue
            eligible.append(entry)

        stored = self.network_store.insert([apply_field_policy(config, e) for e in eligible])
        if self.echo_events:
            for entry in stored:
                self._echo_network(entry)
        return IngestResult(received=len(records), stored=len(stored))

    def _parse_network(self, record: Any) -> NetworkRequestEntry | None:
        """Parse a record for filtering; invalid ones are left to skip."""
        if isinstance(record, NetworkRequestEntry):
            return record
        if not isinstance(record, Mapping):
            logger.warning("Skipping network_requests record that is not an object")
            return None
        try:
            return NetworkRequestEntry.model_validate(record)
        except PydanticValidationError as e:
            logger.warning(
                "Skipping network_requests record that failed validation: %s",
                e.errors(include_url=False),
            )
            return None

    def is_self_traffic(self, entry: NetworkRequestEntry) -> bool:
        """Whether a record is LocalLens noise rather than application traffic."""
        if any(marker in entry.url for marker in self.ignored_url_markers):
            return True
        if entry.page_url.startswith(self.ignored_page_prefixes):
            return True
        if self.skip_static_assets:
            try:
                path = urlsplit(entry.url).path
            except ValueError:
                path = entry.url
            if STATIC_ASSET_PATTERN.search(path):
                return True
        return False

    def _echo_network(self, entry: NetworkRequestEntry) -> None:
        level = logging.ERROR if (entry.status_code or 0) >= 400 else logging.INFO
        status = entry.status_code if entry.status_code is not None else "pending"
        if entry.duration is not None:
            logger.log(level, "%s %s -> %s (%.0fms)", entry.method, entry.url, status, entry.duration)
        else:
            logger.log(level, "%s %s -> %s", entry.method, entry.url, status)
