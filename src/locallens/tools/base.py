"""
Base classes for the agent tool interface.

This module defines the core abstractions for LocalLens tools:
- Tool: Abstract base class that every tool implements
- ToolContext: Runtime context passed to tools (the running service)
- ToolOutput: Standardized result format from tool execution
- ToolArgs: Base model for a tool's arguments

Design Principles:
    - Tools are stateless, all state comes from ToolContext
    - Tools receive validated arguments, validation happens in the registry
    - Tools return ToolOutput and never raise for expected failures
    - Each tool's JSON schema is generated from its ToolArgs model, so the
      advertised schema and the validation can't drift apart
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from locallens.service import LensService

TOOL_DEFAULT_LIMIT = 20
TOOL_MAX_LIMIT = 1000


@dataclass(frozen=True)
class ToolOutput:
    """
    Standardized output from tool execution.

    Attributes:
        success: Whether the tool executed successfully
        data: JSON-serializable payload
        error: Error message if success is False
        metadata: Additional metadata about the execution
    """

    success: bool
    data: Any = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any, **metadata: Any) -> "ToolOutput":
        """Create a successful output."""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: str, **metadata: Any) -> "ToolOutput":
        """Create a failed output."""
        return cls(success=False, error=error, metadata=metadata)


@dataclass
class ToolContext:
    """
    Runtime context passed to tools during execution.

    Attributes:
        service: The running LocalLens service (stores, capture config)
        metadata: Additional caller-specific metadata
    """

    service: "LensService"
    metadata: dict[str, Any] = field(default_factory=dict)


class ToolArgs(BaseModel):
    """Base for tool argument models: camelCase on the wire, extras ignored."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class PagedArgs(ToolArgs):
    """Arguments shared by tools that return a page of records."""

    limit: int = Field(
        default=TOOL_DEFAULT_LIMIT,
        description=f"Maximum number of records to return (1-{TOOL_MAX_LIMIT}).",
    )

    @field_validator("limit")
    @classmethod
    def clamp_limit(cls, v: int) -> int:
        """Clamp into 1..TOOL_MAX_LIMIT; 0 means the default."""
        if v == 0:
            return TOOL_DEFAULT_LIMIT
        return max(1, min(v, TOOL_MAX_LIMIT))


class NoArgs(ToolArgs):
    """For tools that take no parameters."""


class Tool(ABC):
    """
    Abstract base class for all LocalLens tools.

    Subclasses set ``args_model`` and implement ``name`` and ``execute()``.

    Example:
        class CountLogsTool(Tool):
            args_model = NoArgs

            @property
            def name(self) -> str:
                return "count_logs"

            def execute(self, args, context):
                return ToolOutput.ok({"count": context.service.logs.count()})
    """

    args_model: ClassVar[type[ToolArgs]] = NoArgs

    @property
    @abstractmethod
    def name(self) -> str:
        """The unique identifier for this tool (snake_case)."""
        ...

    @property
    def description(self) -> str:
        """Human-readable description shown to the agent."""
        return f"Tool: {self.name}"

    @property
    def input_schema(self) -> dict[str, Any]:
        """JSON schema of the accepted arguments."""
        return self.args_model.model_json_schema(by_alias=True)

    def parse_args(self, args: dict[str, Any] | None) -> ToolArgs:
        """
        Validate raw arguments into the tool's args model.

        Raises:
            pydantic.ValidationError: If the arguments don't fit the model
        """
        return self.args_model.model_validate(args or {})

    def validate_args(self, args: dict[str, Any] | None) -> list[str]:
        """
        Validate the arguments for this tool.

        Returns:
            List of validation error messages (empty if valid)
        """
        try:
            self.parse_args(args)
        except PydanticValidationError as e:
            return [
                f"{'.'.join(str(p) for p in err['loc']) or 'args'}: {err['msg']}"
                for err in e.errors(include_url=False)
            ]
        return []

    @abstractmethod
    def execute(self, args: Any, context: ToolContext) -> ToolOutput:
        """
        Execute the tool with already-validated arguments.

        Args:
            args: Instance of this tool's args_model
            context: Runtime context with the service

        Returns:
            ToolOutput indicating success or failure with data/error
        """
        ...

    def __repr__(self) -> str:
        """String representation of the tool."""
        return f"<Tool: {self.name}>"
