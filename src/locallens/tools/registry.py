"""
Tool registry and dispatch for LocalLens.

The registry maps tool names to tool instances and is the single entry
point for tool calls, whichever transport they arrive on (MCP stdio, the
CLI). ``call()`` looks the tool up, validates the arguments against its
model, and executes it.

Usage:
    registry = build_registry()
    output = registry.call("get_console_logs", {"level": "error"}, context)
"""

import logging
from typing import Any, Iterator

from locallens.errors import StorageError, ToolInvalidArgsError, ToolNotFoundError, ValidationError
from locallens.tools.base import Tool, ToolContext, ToolOutput
from locallens.tools.logs import LOG_TOOLS
from locallens.tools.network import NETWORK_TOOLS

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Registry for looking up and calling tools by name.

    Attributes:
        _tools: Internal mapping of tool names to tool instances
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """
        Register a tool, replacing any tool with the same name.

        Raises:
            ValueError: If tool is None or has an empty name
        """
        if tool is None:
            msg = "Cannot register None as a tool"
            raise ValueError(msg)

        name = tool.name
        if not name:
            msg = "Tool must have a non-empty name"
            raise ValueError(msg)

        if name in self._tools:
            logger.debug("Replacing registered tool %s", name)
        self._tools[name] = tool

    def get(self, name: str) -> Tool:
        """
        Look up a tool by name.

        Raises:
            ToolNotFoundError: If no tool with that name is registered
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(tool=name)
        return tool

    def list_tools(self) -> list[str]:
        """All registered tool names, sorted."""
        return sorted(self._tools.keys())

    def describe(self) -> list[dict[str, Any]]:
        """Name, description and input schema of every tool."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "inputSchema": tool.input_schema,
            }
            for tool in sorted(self._tools.values(), key=lambda t: t.name)
        ]

    def call(
        self,
        name: str,
        args: dict[str, Any] | None,
        context: ToolContext,
    ) -> ToolOutput:
        """
        Dispatch one tool call.

        Storage failures come back as a failed ToolOutput with a generic
        message; the detail is logged.

        Raises:
            ToolNotFoundError: Unknown tool name
            ToolInvalidArgsError: Arguments don't fit the tool's model
        """
        tool = self.get(name)
        raw = dict(args or {})

        errors = tool.validate_args(raw)
        if errors:
            raise ToolInvalidArgsError(
                tool=name,
                tool_args=raw,
                validation_error="; ".join(errors),
            )

        try:
            return tool.execute(tool.parse_args(raw), context)
        except ValidationError as e:
            raise ToolInvalidArgsError(
                tool=name,
                tool_args=raw,
                validation_error=e.message,
            ) from e
        except StorageError:
            logger.exception("Tool %s failed on storage", name)
            return ToolOutput.fail(f"{name} failed: storage error")

    def __iter__(self) -> Iterator[Tool]:
        """Iterate over all registered tools."""
        return iter(self._tools.values())

    def __repr__(self) -> str:
        """String representation of the registry."""
        tools = ", ".join(self.list_tools())
        return f"<ToolRegistry: [{tools}]>"


def build_registry() -> ToolRegistry:
    """A registry holding every built-in LocalLens tool."""
    registry = ToolRegistry()
    for tool_cls in (*LOG_TOOLS, *NETWORK_TOOLS):
        registry.register(tool_cls())
    return registry
