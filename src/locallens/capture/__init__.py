"""
Network capture filtering for LocalLens.

Key concepts:
    - CaptureConfig: what to capture (see locallens.schema)
    - CaptureConfigHolder: the single current config, safely updatable
    - CaptureFilter: accept/reject plus field stripping for each record

The filter is pure: the same config and record always produce the same
decision, which is what makes it table-testable.
"""

from locallens.capture.config import CaptureConfigHolder
from locallens.capture.filter import (
    CONFIG_TRUNCATION_MARKER,
    CaptureDecision,
    CaptureFilter,
    apply_field_policy,
    evaluate,
    should_capture,
)

__all__ = [
    "CONFIG_TRUNCATION_MARKER",
    "CaptureConfigHolder",
    "CaptureDecision",
    "CaptureFilter",
    "apply_field_policy",
    "evaluate",
    "should_capture",
]
