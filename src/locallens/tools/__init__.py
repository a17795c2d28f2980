"""
Agent tool interface for LocalLens.

Built-in tools:
    - get_console_logs / search_logs / clear_console_logs
    - get_network_requests / search_network_requests / clear_network_requests
    - trace_request

Architecture:
    - Tool: Abstract base class defining the tool interface
    - ToolRegistry: Lookup, argument validation and dispatch
    - ToolContext: Runtime context passed to tools (the running service)
    - ToolOutput: Standardized result format from tool execution

Each tool maps onto one event store operation with the same filter
vocabulary as the HTTP API.
"""

from locallens.tools.base import Tool, ToolArgs, ToolContext, ToolOutput
from locallens.tools.registry import ToolRegistry, build_registry
from locallens.tools.shaping import fit_response, minimal_request, truncate_text

__all__ = [
    "Tool",
    "ToolArgs",
    "ToolContext",
    "ToolOutput",
    "ToolRegistry",
    "build_registry",
    "fit_response",
    "minimal_request",
    "truncate_text",
]
