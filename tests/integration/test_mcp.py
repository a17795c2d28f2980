"""
Integration tests for the MCP front end.

Tests cover:
- Tool advertisement: names, descriptions, camelCase parameters
- dispatch: payloads, dropped None arguments, failures raised
"""

import asyncio
from typing import Any, Callable

import pytest

from locallens.mcp_server import SERVER_NAME, ToolCallFailed, build_server, dispatch
from locallens.service import LensService
from locallens.tools import ToolContext, ToolOutput, ToolRegistry, build_registry
from locallens.tools.base import NoArgs, Tool

MakeLog = Callable[..., dict[str, Any]]


class FailingTool(Tool):
    args_model = NoArgs

    @property
    def name(self) -> str:
        return "always_fails"

    def execute(self, args: NoArgs, context: ToolContext) -> ToolOutput:
        return ToolOutput.fail("nothing to see")


@pytest.fixture
def context(service: LensService) -> ToolContext:
    return ToolContext(service=service, metadata={"transport": "mcp"})


class TestAdvertisedTools:
    """Tests for what the MCP server lists."""

    def test_server_name(self, service: LensService) -> None:
        """The server identifies itself as locallens."""
        assert build_server(service).name == SERVER_NAME

    def test_lists_every_tool(self, service: LensService) -> None:
        """Each registry tool is exposed with its description."""
        server = build_server(service)
        tools = asyncio.run(server.list_tools())
        registry = build_registry()

        assert sorted(t.name for t in tools) == registry.list_tools()
        for tool in tools:
            assert tool.description == registry.get(tool.name).description

    def test_camel_case_parameters(self, service: LensService) -> None:
        """Parameters use the wire names agents send."""
        tools = {t.name: t for t in asyncio.run(build_server(service).list_tools())}
        properties = tools["get_network_requests"].inputSchema["properties"]
        assert "statusCode" in properties
        assert "correlationId" in properties
        assert tools["trace_request"].inputSchema["required"] == ["correlationId"]


class TestDispatch:
    """Tests for dispatch."""

    def test_returns_payload(self, context: ToolContext, make_log: MakeLog) -> None:
        """Successful calls return the tool's data."""
        context.service.logs.insert([make_log(level="error"), make_log()])
        data = dispatch(build_registry(), context, "get_console_logs", {"level": "error", "url": None})
        assert len(data["logs"]) == 1

    def test_unknown_tool(self, context: ToolContext) -> None:
        """Unknown names are a failed call."""
        with pytest.raises(ToolCallFailed, match="Unknown tool"):
            dispatch(build_registry(), context, "nope", {})

    def test_invalid_args(self, context: ToolContext) -> None:
        """Argument errors are a failed call."""
        with pytest.raises(ToolCallFailed, match="Invalid arguments"):
            dispatch(build_registry(), context, "get_console_logs", {"level": "loud"})

    def test_failed_output(self, context: ToolContext) -> None:
        """A failed ToolOutput is raised with its message."""
        registry = ToolRegistry()
        registry.register(FailingTool())
        with pytest.raises(ToolCallFailed, match="nothing to see"):
            dispatch(registry, context, "always_fails", {})
