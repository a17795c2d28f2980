"""
Unit tests for the capture config holder.

Tests cover:
- Partial updates with camelCase and snake_case keys
- Rejected updates leave the config unchanged
- Reset to baseline and whole-config replacement
- Concurrent updates
"""

import threading

import pytest

from locallens.capture import CaptureConfigHolder
from locallens.errors import ConfigValidationError
from locallens.schema import CaptureConfig, CaptureMode


class TestUpdate:
    """Tests for partial updates."""

    def test_merge_keeps_other_fields(self) -> None:
        """Omitted keys keep their current values."""
        holder = CaptureConfigHolder()
        holder.update({"includeHeaders": False})
        config = holder.update({"captureMode": "include", "urlPatterns": ["*/api/*"]})

        assert config.include_headers is False
        assert config.capture_mode == CaptureMode.INCLUDE
        assert config.url_patterns == ["*/api/*"]
        assert holder.get() is config

    def test_snake_case_keys(self) -> None:
        """Attribute names are accepted as well as wire names."""
        holder = CaptureConfigHolder()
        config = holder.update({"max_response_body_size": 10, "status_codes": [500]})
        assert config.max_response_body_size == 10
        assert config.status_codes == [500]

    @pytest.mark.parametrize(
        "changes",
        [
            {"enabled": "false"},
            {"maxResponseBodySize": -5},
            {"captureMode": "sometimes"},
            {"methods": "GET"},
            {"notAField": 1},
            {"includeHeaders": False, "statusCodes": ["500"]},
        ],
    )
    def test_invalid_update_changes_nothing(self, changes: dict) -> None:
        """A rejected update leaves every field as it was."""
        holder = CaptureConfigHolder()
        before = holder.get()
        with pytest.raises(ConfigValidationError):
            holder.update(changes)
        assert holder.get() == before

    def test_error_names_field(self) -> None:
        """The error points at the offending key."""
        holder = CaptureConfigHolder()
        with pytest.raises(ConfigValidationError) as exc_info:
            holder.update({"maxResponseBodySize": "big"})
        assert exc_info.value.context["field"] == "maxResponseBodySize"

    def test_non_mapping_rejected(self) -> None:
        """Updates must be objects."""
        holder = CaptureConfigHolder()
        with pytest.raises(ConfigValidationError):
            holder.update(["enabled", False])  # type: ignore[arg-type]

    def test_concurrent_updates_merge(self) -> None:
        """Parallel updates to different keys all land."""
        holder = CaptureConfigHolder()
        fields = ["includeHeaders", "includeRequestBody", "includeResponseBody", "includeQueryParams"]
        threads = [threading.Thread(target=holder.update, args=({f: False},)) for f in fields]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        config = holder.get()
        assert not config.include_headers
        assert not config.include_request_body
        assert not config.include_response_body
        assert not config.include_query_params


class TestResetAndReplace:
    """Tests for reset and replace."""

    def test_reset_restores_defaults(self) -> None:
        """reset() returns the documented defaults."""
        holder = CaptureConfigHolder()
        holder.update({"enabled": False, "methods": ["POST"]})
        assert holder.reset() == CaptureConfig()
        assert holder.get() == CaptureConfig()

    def test_reset_idempotent(self) -> None:
        """Resetting twice is the same as once."""
        holder = CaptureConfigHolder()
        first = holder.reset()
        assert holder.reset() == first

    def test_custom_baseline(self) -> None:
        """reset() returns to the configured baseline, not the defaults."""
        baseline = CaptureConfig(include_response_body=False)
        holder = CaptureConfigHolder(baseline)
        holder.update({"includeResponseBody": True})
        assert holder.reset() is baseline
        assert holder.baseline is baseline

    def test_replace_fills_defaults(self) -> None:
        """replace() takes a whole config; missing keys are defaults."""
        holder = CaptureConfigHolder()
        holder.update({"includeHeaders": False})
        config = holder.replace({"enabled": False})
        assert config.enabled is False
        assert config.include_headers is True

    def test_replace_invalid(self) -> None:
        """replace() validates too."""
        holder = CaptureConfigHolder()
        with pytest.raises(ConfigValidationError):
            holder.replace({"enabled": "no"})
        assert holder.get() == CaptureConfig()
