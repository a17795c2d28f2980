"""
Capture filter for network transactions.

The capture filter decides, per incoming network record, whether it may be
stored at all, and then strips or trims the fields the configuration says
not to keep. It runs before the network store sees the record.

Evaluation order (first rejection wins):
    1. Capture disabled
    2. Method not in a non-empty methods list
    3. Status code present (0 counts as absent) and not in a non-empty statusCodes list
    4. URL patterns: INCLUDE rejects non-matching URLs,
       EXCLUDE rejects matching URLs, ALL ignores the patterns

Both entry points are pure functions of (config, record); CaptureFilter is
a thin wrapper that reads the current config from a CaptureConfigHolder.
"""

import re
from functools import lru_cache
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field

from locallens.capture.config import CaptureConfigHolder
from locallens.schema import CaptureConfig, CaptureMode, NetworkRequestEntry
from locallens.store.codec import truncate_utf8

CONFIG_TRUNCATION_MARKER = "... [truncated by config]"


class CaptureDecision(BaseModel):
    """
    Outcome of evaluating one network record against the capture config.

    Attributes:
        captured: Whether the record may be stored
        reason: Human-readable explanation of the decision
        rule: Which config field decided it
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    captured: bool = Field(..., description="Whether the record may be stored")
    reason: str = Field(..., description="Why")
    rule: str | None = Field(default=None, description="Deciding config field")

    @classmethod
    def accept(cls, reason: str, rule: str | None = None) -> "CaptureDecision":
        """Create an ACCEPT decision."""
        return cls(captured=True, reason=reason, rule=rule)

    @classmethod
    def reject(cls, reason: str, rule: str | None = None) -> "CaptureDecision":
        """Create a REJECT decision."""
        return cls(captured=False, reason=reason, rule=rule)


# =============================================================================
# URL pattern matching
# =============================================================================


@lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> re.Pattern[str] | None:
    """
    Compile a URL pattern, case-insensitively.

    Tried in order: the pattern as a regex, then with '*' as a wildcard
    over the escaped remainder. None means "match as a literal substring".
    """
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        pass
    if "*" in pattern:
        wildcard = ".*".join(re.escape(part) for part in pattern.split("*"))
        return re.compile(wildcard, re.IGNORECASE)
    return None


def url_matches(url: str, pattern: str) -> bool:
    """Whether a URL matches one configured pattern."""
    compiled = _compile_pattern(pattern)
    if compiled is None:
        return pattern.lower() in url.lower()
    return compiled.search(url) is not None


def matches_any(url: str, patterns: list[str]) -> str | None:
    """Return the first pattern that matches the URL, if any."""
    for pattern in patterns:
        if url_matches(url, pattern):
            return pattern
    return None


# =============================================================================
# Decision and field policy
# =============================================================================


def evaluate(config: CaptureConfig, record: NetworkRequestEntry) -> CaptureDecision:
    """Decide whether a record is eligible for storage, with the reason."""
    if not config.enabled:
        return CaptureDecision.reject("Network capture is disabled", rule="enabled")

    method = record.method.upper()
    if config.methods and method not in config.methods:
        return CaptureDecision.reject(
            f"Method not captured: {method}",
            rule="methods",
        )

    if (
        config.status_codes
        and record.status_code
        and record.status_code not in config.status_codes
    ):
        return CaptureDecision.reject(
            f"Status code not captured: {record.status_code}",
            rule="statusCodes",
        )

    if config.url_patterns and config.capture_mode != CaptureMode.ALL:
        matched = matches_any(record.url, config.url_patterns)
        if config.capture_mode == CaptureMode.INCLUDE and matched is None:
            return CaptureDecision.reject(
                f"URL matches no include pattern: {record.url}",
                rule="urlPatterns",
            )
        if config.capture_mode == CaptureMode.EXCLUDE and matched is not None:
            return CaptureDecision.reject(
                f"URL matches exclude pattern: {matched}",
                rule=f"urlPatterns[{matched}]",
            )
        if matched is not None:
            return CaptureDecision.accept(
                f"URL matches include pattern: {matched}",
                rule=f"urlPatterns[{matched}]",
            )

    return CaptureDecision.accept("Captured")


def should_capture(config: CaptureConfig, record: NetworkRequestEntry) -> bool:
    """Whether a record is eligible for storage under config."""
    return evaluate(config, record).captured


def strip_query(url: str) -> str:
    """Drop the query string from a URL, keeping everything else."""
    try:
        parts = urlsplit(url)
    except ValueError:
        # Unparseable (e.g. a broken IPv6 host): cut at the first '?'
        head, sep, rest = url.partition("?")
        if not sep:
            return url
        _, hash_sep, fragment = rest.partition("#")
        return head + hash_sep + fragment
    if not parts.query:
        return url
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", parts.fragment))


def apply_field_policy(config: CaptureConfig, record: NetworkRequestEntry) -> NetworkRequestEntry:
    """
    Return a copy of record with unwanted fields removed or trimmed.

    - headers dropped unless include_headers
    - request body dropped unless include_request_body
    - response body dropped unless include_response_body, otherwise cut
      to max_response_body_size bytes plus a marker
    - query string dropped unless include_query_params
    """
    update: dict[str, object] = {}

    if not config.include_headers:
        update["request_headers"] = None
        update["response_headers"] = None

    if not config.include_request_body:
        update["request_body"] = None

    if not config.include_response_body:
        update["response_body"] = None
    elif record.response_body is not None:
        trimmed = truncate_utf8(
            record.response_body,
            config.max_response_body_size,
            CONFIG_TRUNCATION_MARKER,
        )
        if trimmed is not record.response_body:
            update["response_body"] = trimmed

    if not config.include_query_params:
        stripped = strip_query(record.url)
        if stripped != record.url:
            update["url"] = stripped

    if not update:
        return record
    return record.model_copy(update=update)


class CaptureFilter:
    """
    Capture filter bound to a live config holder.

    Usage:
        capture = CaptureFilter(holder)
        kept = [capture.apply(r) for r in records if capture.should_capture(r)]

    Each call reads the holder's current config, so updates take effect
    for the next record.
    """

    def __init__(self, holder: CaptureConfigHolder) -> None:
        self.holder = holder

    @property
    def config(self) -> CaptureConfig:
        """The config in force right now."""
        return self.holder.get()

    def evaluate(self, record: NetworkRequestEntry) -> CaptureDecision:
        """Decision with reason for one record."""
        return evaluate(self.config, record)

    def should_capture(self, record: NetworkRequestEntry) -> bool:
        """Whether one record may be stored."""
        return should_capture(self.config, record)

    def apply(self, record: NetworkRequestEntry) -> NetworkRequestEntry:
        """Field policy for one record."""
        return apply_field_policy(self.config, record)

    def process(self, records: list[NetworkRequestEntry]) -> list[NetworkRequestEntry]:
        """Filter then strip a batch against a single config snapshot."""
        config = self.config
        return [apply_field_policy(config, r) for r in records if should_capture(config, r)]
