"""
MCP (stdio JSON-RPC) front end for the LocalLens tools.

Each FastMCP tool function is a typed signature over one registry tool;
the registry does validation and dispatch, so the MCP layer only maps
results and failures onto MCP's conventions. A failed ToolOutput or a
dispatch error is raised, which FastMCP reports as an ``isError`` result.
"""

import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from locallens import __version__
from locallens.errors import LocalLensError
from locallens.service import LensService
from locallens.tools import ToolContext, ToolRegistry, build_registry

logger = logging.getLogger(__name__)

SERVER_NAME = "locallens"


class ToolCallFailed(RuntimeError):
    """A tool call that produced an error result for the agent."""


def dispatch(
    registry: ToolRegistry,
    context: ToolContext,
    name: str,
    args: dict[str, Any],
) -> dict[str, Any]:
    """
    Run one tool and return its payload.

    Raises:
        ToolCallFailed: Unknown tool, bad arguments or a failed output
    """
    try:
        output = registry.call(name, {k: v for k, v in args.items() if v is not None}, context)
    except LocalLensError as e:
        logger.warning("Tool call %s rejected: %s", name, e.message)
        raise ToolCallFailed(e.message) from e
    if not output.success:
        raise ToolCallFailed(output.error or f"{name} failed")
    return output.data


def build_server(service: LensService, registry: ToolRegistry | None = None) -> FastMCP:
    """Create the FastMCP server exposing every LocalLens tool."""
    mcp = FastMCP(SERVER_NAME)
    registry = registry or build_registry()
    context = ToolContext(service=service, metadata={"transport": "mcp", "version": __version__})

    def call(name: str, **args: Any) -> dict[str, Any]:
        return dispatch(registry, context, name, args)

    def describe(name: str) -> str:
        return registry.get(name).description

    @mcp.tool(description=describe("get_console_logs"))
    def get_console_logs(
        limit: int = 20,
        offset: int = 0,
        level: str | None = None,
        url: str | None = None,
        startTime: str | None = None,
        endTime: str | None = None,
        source: str | None = None,
        backendProcess: str | None = None,
    ) -> dict[str, Any]:
        return call(
            "get_console_logs",
            limit=limit,
            offset=offset,
            level=level,
            url=url,
            startTime=startTime,
            endTime=endTime,
            source=source,
            backendProcess=backendProcess,
        )

    @mcp.tool(description=describe("search_logs"))
    def search_logs(
        query: str,
        limit: int = 20,
        source: str | None = None,
        backendProcess: str | None = None,
    ) -> dict[str, Any]:
        return call(
            "search_logs",
            query=query,
            limit=limit,
            source=source,
            backendProcess=backendProcess,
        )

    @mcp.tool(description=describe("clear_console_logs"))
    def clear_console_logs() -> dict[str, Any]:
        return call("clear_console_logs")

    @mcp.tool(description=describe("get_network_requests"))
    def get_network_requests(
        limit: int = 20,
        offset: int = 0,
        method: str | None = None,
        url: str | None = None,
        statusCode: int | None = None,
        startTime: str | None = None,
        endTime: str | None = None,
        source: str | None = None,
        backendProcess: str | None = None,
        correlationId: str | None = None,
    ) -> dict[str, Any]:
        return call(
            "get_network_requests",
            limit=limit,
            offset=offset,
            method=method,
            url=url,
            statusCode=statusCode,
            startTime=startTime,
            endTime=endTime,
            source=source,
            backendProcess=backendProcess,
            correlationId=correlationId,
        )

    @mcp.tool(description=describe("search_network_requests"))
    def search_network_requests(
        query: str,
        limit: int = 20,
        source: str | None = None,
        backendProcess: str | None = None,
    ) -> dict[str, Any]:
        return call(
            "search_network_requests",
            query=query,
            limit=limit,
            source=source,
            backendProcess=backendProcess,
        )

    @mcp.tool(description=describe("clear_network_requests"))
    def clear_network_requests() -> dict[str, Any]:
        return call("clear_network_requests")

    @mcp.tool(description=describe("trace_request"))
    def trace_request(correlationId: str, limit: int = 50) -> dict[str, Any]:
        return call("trace_request", correlationId=correlationId, limit=limit)

    return mcp


def run_stdio(service: LensService) -> None:
    """Serve the tools over stdio until the client disconnects."""
    logger.info("MCP server %s %s starting on stdio", SERVER_NAME, __version__)
    build_server(service).run()
