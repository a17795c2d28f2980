"""
LensService: the running LocalLens core.

One service owns one Database handle, the two stores that share it, the
capture config holder and the ingestion pipeline. Adapters (HTTP, tool
calls, CLI) are handed a service instead of reaching for globals.

Lifecycle:
    with LensService(settings) as service:
        service.ingest.ingest_logs(payload)
        service.logs.query(limit=10)
    # database closed here
"""

import logging
from typing import Any

from locallens.capture import CaptureConfigHolder, CaptureFilter
from locallens.ingest import IngestPipeline
from locallens.schema import CaptureConfig
from locallens.settings import Settings
from locallens.store import Database, LogStore, NetworkStore

logger = logging.getLogger(__name__)


class LensService:
    """
    Composition root for the event stores and capture filtering.

    Attributes:
        settings: Settings the service was built from
        db: Shared database handle
        logs: Console log store
        network: Network request store
        capture_config: Holder of the current CaptureConfig
        capture_filter: Filter bound to capture_config
        ingest: Pipeline the HTTP adapter feeds
    """

    def __init__(
        self,
        settings: Settings | None = None,
        capture_config: CaptureConfig | None = None,
    ) -> None:
        """
        Open the database and build the stores.

        Args:
            settings: Runtime settings (defaults to Settings())
            capture_config: Starting capture config; overrides the one
                            named in settings
        """
        self.settings = settings or Settings()
        self.db = Database(self.settings.db_path)
        try:
            self.db.initialize()
            self.logs = LogStore(self.db, max_entries=self.settings.max_entries)
            self.network = NetworkStore(self.db, max_entries=self.settings.max_entries)
            baseline = capture_config or self.settings.initial_capture_config()
        except Exception:
            self.db.close()
            raise

        self.capture_config = CaptureConfigHolder(baseline)
        self.capture_filter = CaptureFilter(self.capture_config)
        self.ingest = IngestPipeline(
            self.logs,
            self.network,
            self.capture_filter,
            ignored_url_markers=self.settings.url_markers(),
            ignored_page_prefixes=self.settings.ignored_page_prefixes,
            skip_static_assets=self.settings.skip_static_assets,
            echo_events=self.settings.echo_events,
        )
        logger.debug("LocalLens service opened on %s", self.db.db_path)

    def stats(self) -> dict[str, Any]:
        """Row counts for both tables."""
        return {"logs": self.logs.count(), "networkRequests": self.network.count()}

    def close(self) -> None:
        """Close the database handle. Safe to call twice."""
        if not self.db.closed:
            self.db.close()
            logger.debug("LocalLens service closed")

    @property
    def closed(self) -> bool:
        """Whether close() has run."""
        return self.db.closed

    def __enter__(self) -> "LensService":
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()

    def __repr__(self) -> str:
        """String representation of the service."""
        return f"<LensService: {self.db.db_path}>"
