"""
Schema definitions for LocalLens.

This module defines the Pydantic models used throughout LocalLens:
- LogEntry: One console line from a browser page or backend process
- NetworkRequestEntry: One HTTP transaction observed by a producer
- CaptureConfig: Which network transactions are eligible for storage
- LogFilters/NetworkFilters: The query vocabulary shared by HTTP and tools

Design Decisions:
    - Python attributes are snake_case; the wire format is camelCase
      (aliases are generated, and both spellings are accepted on input)
    - Records ignore unknown fields, producers evolve faster than the store
    - CaptureConfig forbids unknown fields and uses strict bool/int types,
      a bad update must be rejected rather than coerced
    - Models are immutable (frozen=True); "changing" one means model_copy()
"""

from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    field_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================


class LogLevel(str, Enum):
    """Console method that produced a log line."""

    LOG = "log"
    WARN = "warn"
    ERROR = "error"
    INFO = "info"


class CaptureMode(str, Enum):
    """
    How urlPatterns are applied.

    ALL ignores the pattern list, INCLUDE keeps only matching URLs,
    EXCLUDE drops matching URLs.
    """

    ALL = "all"
    INCLUDE = "include"
    EXCLUDE = "exclude"


class RecordSource(str, Enum):
    """Where a record came from, as tagged in its metadata."""

    BROWSER = "browser"
    BACKEND_CONSOLE = "backend-console"
    BACKEND_INBOUND = "backend-inbound"
    BACKEND_OUTBOUND = "backend-outbound"


# =============================================================================
# Record Models
# =============================================================================


class EntryModel(BaseModel):
    """Shared configuration and helpers for stored record models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape producers and consumers use."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def missing_fields(self) -> list[str]:
        """Names of required fields that are present but empty."""
        return []


class LogEntry(EntryModel):
    """
    A single console log line.

    Attributes:
        id: Assigned by the store on insert (None before that)
        timestamp: ISO-8601 string from the producer, stored as given
        level: Console level
        message: The log text; multi-line backend output arrives pre-joined
        stack_trace: Optional stack trace for errors
        page_url: Page the line came from, or process://<name> for backends
        user_agent: Optional producer user agent
        metadata: Optional free-form JSON object (source, backendProcess, ...)
    """

    id: int | None = Field(default=None, description="Store-assigned id")
    timestamp: str = Field(..., description="Producer timestamp (ISO-8601)")
    level: LogLevel = Field(..., description="Console level")
    message: str = Field(default="", description="Log message text")
    stack_trace: str | None = Field(default=None, description="Stack trace")
    page_url: str = Field(default="", description="Originating page or process")
    user_agent: str | None = Field(default=None, description="Producer user agent")
    metadata: dict[str, Any] | None = Field(default=None, description="Free-form metadata")

    def missing_fields(self) -> list[str]:
        """Return the empty required fields (message, pageUrl)."""
        missing = []
        if not self.message:
            missing.append("message")
        if not self.page_url:
            missing.append("pageUrl")
        return missing


class NetworkRequestEntry(EntryModel):
    """
    A single HTTP transaction.

    A missing status_code means the request was still pending or was aborted
    when the producer reported it.
    """

    id: int | None = Field(default=None, description="Store-assigned id")
    request_id: str = Field(default="", description="Producer correlation id")
    timestamp: str = Field(..., description="Producer timestamp (ISO-8601)")
    method: str = Field(default="", description="HTTP method")
    url: str = Field(default="", description="Request URL")
    request_headers: dict[str, Any] | None = Field(default=None)
    response_headers: dict[str, Any] | None = Field(default=None)
    request_body: str | None = Field(default=None)
    response_body: str | None = Field(default=None)
    status_code: int | None = Field(default=None, description="HTTP status code")
    duration: float | None = Field(default=None, description="Duration in ms")
    response_size: int | None = Field(default=None, description="Response size in bytes")
    page_url: str = Field(default="", description="Page that issued the request")
    user_agent: str | None = Field(default=None)
    metadata: dict[str, Any] | None = Field(default=None)

    def missing_fields(self) -> list[str]:
        """Return the empty required fields."""
        required = {
            "requestId": self.request_id,
            "method": self.method,
            "url": self.url,
            "pageUrl": self.page_url,
        }
        return [name for name, value in required.items() if not value]


# =============================================================================
# Query Filters
# =============================================================================


class FilterModel(BaseModel):
    """Shared configuration for query filter models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class LogFilters(FilterModel):
    """
    AND-combined predicates for log queries.

    Attributes:
        level: Exact level match
        url: Substring of the page URL
        start_time: Inclusive lower bound on timestamp
        end_time: Inclusive upper bound on timestamp
        source: metadata.source, records without one count as "browser"
        backend_process: metadata.backendProcess
    """

    level: LogLevel | None = None
    url: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    source: str | None = None
    backend_process: str | None = None


class NetworkFilters(FilterModel):
    """AND-combined predicates for network request queries."""

    method: str | None = None
    url: str | None = None
    status_code: int | None = None
    start_time: str | None = None
    end_time: str | None = None
    source: str | None = None
    backend_process: str | None = None
    correlation_id: str | None = None


class SearchFilters(FilterModel):
    """Metadata predicates that narrow a full-text search."""

    source: str | None = None
    backend_process: str | None = None


# =============================================================================
# Capture Configuration
# =============================================================================

DEFAULT_CAPTURE_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


class CaptureConfig(BaseModel):
    """
    Network capture configuration.

    Attributes:
        enabled: Master switch, nothing is captured when False
        capture_mode: How url_patterns are applied
        url_patterns: Regexes, '*' wildcards or literal substrings
        include_headers: Keep request/response headers
        include_request_body: Keep the request body
        include_response_body: Keep the response body
        include_query_params: Keep the URL query string
        max_response_body_size: Response body cap in bytes (when kept)
        methods: Allowed methods, empty means all
        status_codes: Allowed status codes, empty means all
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    enabled: StrictBool = True
    capture_mode: CaptureMode = CaptureMode.ALL
    url_patterns: list[StrictStr] = Field(default_factory=list)
    include_headers: StrictBool = True
    include_request_body: StrictBool = True
    include_response_body: StrictBool = True
    include_query_params: StrictBool = True
    max_response_body_size: StrictInt = Field(default=50_000, ge=0)
    methods: list[StrictStr] = Field(default_factory=lambda: list(DEFAULT_CAPTURE_METHODS))
    status_codes: list[StrictInt] = Field(default_factory=list)

    @field_validator("methods")
    @classmethod
    def normalize_methods(cls, v: list[str]) -> list[str]:
        """Upper-case and de-blank method names."""
        return [m.strip().upper() for m in v if m.strip()]

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def load_capture_config(path: Path | str) -> CaptureConfig:
    """
    Load a capture configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated CaptureConfig

    Raises:
        FileNotFoundError: If the file doesn't exist
        pydantic.ValidationError: If the YAML doesn't match the schema
    """
    path = Path(path)
    with path.open() as f:
        data = yaml.safe_load(f)

    return CaptureConfig.model_validate(data or {})


def load_capture_config_from_string(content: str) -> CaptureConfig:
    """Load a capture configuration from a YAML string."""
    data = yaml.safe_load(content)
    return CaptureConfig.model_validate(data or {})
