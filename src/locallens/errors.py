"""
Exception hierarchy for LocalLens.

All LocalLens exceptions inherit from LocalLensError, allowing callers to
catch every LocalLens-specific failure with a single except clause.

Exception Categories:
    - ValidationError: Malformed batch shape or invalid capture config
    - StorageError: Database operation failed (batch rolled back)
    - ToolError: Tool-call dispatch failed (unknown tool, bad arguments)

Two outcomes are deliberately *not* exceptions:
    - A record missing a required field is skipped and logged, and the
      rest of its batch is still stored.
    - A point lookup miss returns None.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Validation errors: 1xxx
ERROR_VALIDATION = 1001
ERROR_BATCH_INVALID = 1002
ERROR_CONFIG_INVALID = 1003

# Storage errors: 2xxx
ERROR_STORAGE_CONNECTION = 2001
ERROR_STORAGE_WRITE = 2002
ERROR_STORAGE_READ = 2003

# Tool errors: 3xxx
ERROR_TOOL_NOT_FOUND = 3001
ERROR_TOOL_INVALID_ARGS = 3002


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class LocalLensError(Exception):
    """
    Base exception for all LocalLens errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Validation Errors
# =============================================================================


@dataclass
class ValidationError(LocalLensError):
    """
    Raised when a request is rejected before any processing happens.

    Attributes:
        field: The offending field, if one can be named
    """

    field: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid value for {self.field or 'request'}"
        if self.code == 0:
            self.code = ERROR_VALIDATION
        self.context["field"] = self.field


@dataclass
class BatchValidationError(ValidationError):
    """Raised when an ingestion batch does not have the expected shape."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid batch format: '{self.field}' must be a list"
        if self.code == 0:
            self.code = ERROR_BATCH_INVALID
        super().__post_init__()


@dataclass
class ConfigValidationError(ValidationError):
    """Raised when a capture config update has a wrong type or range."""

    reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            target = self.field or "config"
            self.message = f"Invalid capture config ({target}): {self.reason}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        super().__post_init__()
        self.context["reason"] = self.reason


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(LocalLensError):
    """
    Base class for storage/database errors.

    Attributes:
        operation: The operation that failed (e.g., "insert", "query")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when the database cannot be opened."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to connect to database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails and its transaction is rolled back."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# Tool Errors
# =============================================================================


@dataclass
class ToolError(LocalLensError):
    """
    Base class for tool-call dispatch errors.

    Attributes:
        tool: Name of the tool that was called
        tool_args: Arguments that were provided
    """

    tool: str = ""
    tool_args: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context.update({
            "tool": self.tool,
            "tool_args": self.tool_args,
        })


@dataclass
class ToolNotFoundError(ToolError):
    """Raised when a tool is not registered."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Unknown tool: {self.tool}"
        if self.code == 0:
            self.code = ERROR_TOOL_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Run `locallens tools` to list the available tools"
        super().__post_init__()


@dataclass
class ToolInvalidArgsError(ToolError):
    """Raised when tool arguments are invalid."""

    validation_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid arguments for {self.tool}: {self.validation_error}"
        if self.code == 0:
            self.code = ERROR_TOOL_INVALID_ARGS
        super().__post_init__()
        self.context["validation_error"] = self.validation_error
