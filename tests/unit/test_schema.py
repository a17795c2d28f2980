"""
Unit tests for schema models.

Tests cover:
- Record models: aliases, required fields, missing-field detection
- Query filter models
- CaptureConfig defaults, strict validation and YAML loading
"""

from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from locallens.schema import (
    DEFAULT_CAPTURE_METHODS,
    CaptureConfig,
    CaptureMode,
    LogEntry,
    LogFilters,
    LogLevel,
    NetworkFilters,
    NetworkRequestEntry,
    load_capture_config,
    load_capture_config_from_string,
)


# =============================================================================
# Record Models
# =============================================================================


class TestLogEntry:
    """Tests for LogEntry."""

    def test_from_wire(self) -> None:
        """camelCase input populates snake_case attributes."""
        entry = LogEntry.model_validate({
            "timestamp": "2024-01-01T00:00:00Z",
            "level": "error",
            "message": "boom",
            "stackTrace": "at x",
            "pageUrl": "https://a.test/",
            "metadata": {"source": "browser"},
        })
        assert entry.level == LogLevel.ERROR
        assert entry.stack_trace == "at x"
        assert entry.page_url == "https://a.test/"

    def test_snake_case_accepted(self) -> None:
        """Attribute names work too."""
        entry = LogEntry(timestamp="t", level=LogLevel.LOG, message="m", page_url="p")
        assert entry.page_url == "p"

    def test_to_wire_omits_none(self) -> None:
        """Wire form is camelCase without empty optionals."""
        entry = LogEntry(timestamp="t", level=LogLevel.WARN, message="m", page_url="p")
        wire = entry.to_wire()
        assert wire == {"timestamp": "t", "level": "warn", "message": "m", "pageUrl": "p"}

    def test_unknown_level_rejected(self) -> None:
        """Only log, warn, error and info are levels."""
        with pytest.raises(PydanticValidationError):
            LogEntry.model_validate({"timestamp": "t", "level": "debug", "message": "m", "pageUrl": "p"})

    def test_level_required(self) -> None:
        """A record without a level is invalid."""
        with pytest.raises(PydanticValidationError):
            LogEntry.model_validate({"timestamp": "t", "message": "m", "pageUrl": "p"})

    def test_missing_fields(self) -> None:
        """Empty message and page URL are reported."""
        entry = LogEntry(timestamp="t", level=LogLevel.LOG)
        assert entry.missing_fields() == ["message", "pageUrl"]

    def test_extra_fields_ignored(self) -> None:
        """Producers may send fields the store doesn't know."""
        entry = LogEntry.model_validate({
            "timestamp": "t", "level": "log", "message": "m", "pageUrl": "p", "tabId": 4,
        })
        assert "tabId" not in entry.to_wire()

    def test_frozen(self) -> None:
        """Entries are immutable."""
        entry = LogEntry(timestamp="t", level=LogLevel.LOG, message="m", page_url="p")
        with pytest.raises(PydanticValidationError):
            entry.message = "changed"  # type: ignore[misc]


class TestNetworkRequestEntry:
    """Tests for NetworkRequestEntry."""

    def test_from_wire(self) -> None:
        """Headers, bodies and numbers parse from camelCase."""
        entry = NetworkRequestEntry.model_validate({
            "requestId": "r1",
            "timestamp": "t",
            "method": "POST",
            "url": "https://api.test/x",
            "requestHeaders": {"content-type": "application/json"},
            "responseBody": "{}",
            "statusCode": 201,
            "duration": 12.5,
            "pageUrl": "https://app.test/",
        })
        assert entry.request_id == "r1"
        assert entry.status_code == 201
        assert entry.request_headers == {"content-type": "application/json"}

    def test_missing_fields(self) -> None:
        """All four identifying fields are required non-empty."""
        entry = NetworkRequestEntry(timestamp="t")
        assert entry.missing_fields() == ["requestId", "method", "url", "pageUrl"]

    def test_pending_request(self) -> None:
        """No status code means pending."""
        entry = NetworkRequestEntry(request_id="r", timestamp="t", method="GET", url="u", page_url="p")
        assert entry.status_code is None
        assert entry.missing_fields() == []


# =============================================================================
# Filters
# =============================================================================


class TestFilters:
    """Tests for query filter models."""

    def test_log_filters_from_query_params(self) -> None:
        """Wire names map onto filter fields."""
        filters = LogFilters.model_validate({"level": "error", "startTime": "a", "backendProcess": "api"})
        assert filters.level == LogLevel.ERROR
        assert filters.start_time == "a"
        assert filters.backend_process == "api"

    def test_network_status_code_coerced(self) -> None:
        """Query strings arrive as text."""
        filters = NetworkFilters.model_validate({"statusCode": "404", "correlationId": "c"})
        assert filters.status_code == 404
        assert filters.correlation_id == "c"

    def test_bad_level(self) -> None:
        """Unknown level is a validation error."""
        with pytest.raises(PydanticValidationError):
            LogFilters.model_validate({"level": "loud"})


# =============================================================================
# Capture Configuration
# =============================================================================


class TestCaptureConfig:
    """Tests for CaptureConfig."""

    def test_defaults(self) -> None:
        """Documented defaults."""
        config = CaptureConfig()
        assert config.enabled is True
        assert config.capture_mode == CaptureMode.ALL
        assert config.url_patterns == []
        assert config.include_headers is True
        assert config.include_request_body is True
        assert config.include_response_body is True
        assert config.include_query_params is True
        assert config.max_response_body_size == 50_000
        assert config.methods == DEFAULT_CAPTURE_METHODS
        assert config.status_codes == []

    def test_wire_keys(self) -> None:
        """Serialized with camelCase keys."""
        wire = CaptureConfig().to_wire()
        assert wire["captureMode"] == "all"
        assert wire["maxResponseBodySize"] == 50_000
        assert "urlPatterns" in wire

    @pytest.mark.parametrize(
        "data",
        [
            {"enabled": "yes"},
            {"enabled": 1},
            {"captureMode": "some"},
            {"urlPatterns": "*/api/*"},
            {"methods": "GET"},
            {"statusCodes": ["200"]},
            {"maxResponseBodySize": -1},
            {"maxResponseBodySize": "100"},
            {"unknownKey": True},
        ],
    )
    def test_invalid_values_rejected(self, data: dict) -> None:
        """Wrong types, ranges and unknown keys are rejected, not coerced."""
        with pytest.raises(PydanticValidationError):
            CaptureConfig.model_validate(data)

    def test_methods_normalized(self) -> None:
        """Methods are upper-cased and blanks dropped."""
        config = CaptureConfig(methods=["get", " post ", ""])
        assert config.methods == ["GET", "POST"]

    def test_load_from_string(self) -> None:
        """YAML with camelCase keys."""
        config = load_capture_config_from_string(
            """
captureMode: include
urlPatterns:
  - "*/api/*"
includeResponseBody: false
"""
        )
        assert config.capture_mode == CaptureMode.INCLUDE
        assert config.url_patterns == ["*/api/*"]
        assert config.include_response_body is False

    def test_load_empty_string(self) -> None:
        """An empty document means defaults."""
        assert load_capture_config_from_string("") == CaptureConfig()

    def test_load_from_file(self, temp_dir: Path) -> None:
        """YAML file with snake_case keys."""
        path = temp_dir / "capture.yaml"
        path.write_text("methods: [POST]\nstatus_codes: [500, 502]\n")
        config = load_capture_config(path)
        assert config.methods == ["POST"]
        assert config.status_codes == [500, 502]

    def test_load_missing_file(self, temp_dir: Path) -> None:
        """Missing files raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_capture_config(temp_dir / "nope.yaml")
