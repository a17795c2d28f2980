"""
Network request tools.

Tools:
    - get_network_requests: Page through stored requests with filters
    - search_network_requests: Substring search over URLs, headers, bodies
    - clear_network_requests: Delete every stored request
    - trace_request: Follow one correlation id across browser and backends

Records are returned in minimal form (see locallens.tools.shaping).
"""

from typing import Any

from pydantic import Field

from locallens.schema import NetworkFilters, RecordSource, SearchFilters
from locallens.tools.base import NoArgs, PagedArgs, Tool, ToolArgs, ToolContext, ToolOutput
from locallens.tools.shaping import MAX_RESPONSE_CHARS, fit_response, minimal_request

TRACE_DEFAULT_LIMIT = 50


class GetRequestsArgs(PagedArgs):
    """Arguments for get_network_requests."""

    offset: int = Field(default=0, ge=0, description="Number of requests to skip.")
    method: str | None = Field(default=None, description="HTTP method, case-insensitive.")
    url: str | None = Field(default=None, description="Substring of the request URL.")
    status_code: int | None = Field(default=None, description="Exact HTTP status code.")
    start_time: str | None = Field(default=None, description="ISO-8601 lower bound (inclusive).")
    end_time: str | None = Field(default=None, description="ISO-8601 upper bound (inclusive).")
    source: str | None = Field(
        default=None,
        description="'browser', 'backend-inbound' or 'backend-outbound'.",
    )
    backend_process: str | None = Field(default=None, description="Backend process name.")
    correlation_id: str | None = Field(default=None, description="Correlation id.")

    def filters(self) -> NetworkFilters:
        return NetworkFilters(
            method=self.method,
            url=self.url,
            status_code=self.status_code,
            start_time=self.start_time,
            end_time=self.end_time,
            source=self.source,
            backend_process=self.backend_process,
            correlation_id=self.correlation_id,
        )


class SearchRequestsArgs(PagedArgs):
    """Arguments for search_network_requests."""

    query: str = Field(..., description="Case-insensitive substring to find.")
    source: str | None = Field(default=None, description="Record source.")
    backend_process: str | None = Field(default=None, description="Backend process name.")


class TraceArgs(ToolArgs):
    """Arguments for trace_request."""

    correlation_id: str = Field(..., min_length=1, description="Correlation id to trace.")
    limit: int = Field(default=TRACE_DEFAULT_LIMIT, ge=1, le=1000)


class GetNetworkRequestsTool(Tool):
    """Page through network requests, newest first."""

    args_model = GetRequestsArgs

    @property
    def name(self) -> str:
        return "get_network_requests"

    @property
    def description(self) -> str:
        return (
            "Retrieve captured HTTP requests, newest first, with method, URL, "
            "status, timing and truncated bodies. Supports method, URL, status, "
            "time range, source and correlation id filters."
        )

    def execute(self, args: GetRequestsArgs, context: ToolContext) -> ToolOutput:
        requests = context.service.network.query(args.limit, args.offset, args.filters())
        return ToolOutput.ok(fit_response({"requests": [minimal_request(r) for r in requests]}))


class SearchNetworkRequestsTool(Tool):
    """Search URLs, headers and bodies."""

    args_model = SearchRequestsArgs

    @property
    def name(self) -> str:
        return "search_network_requests"

    @property
    def description(self) -> str:
        return (
            "Search captured HTTP requests by case-insensitive partial match "
            "across URLs, headers and request/response bodies."
        )

    def execute(self, args: SearchRequestsArgs, context: ToolContext) -> ToolOutput:
        filters = SearchFilters(source=args.source, backend_process=args.backend_process)
        requests = context.service.network.search(args.query, args.limit, filters)
        return ToolOutput.ok(fit_response({"requests": [minimal_request(r) for r in requests]}))


class ClearNetworkRequestsTool(Tool):
    """Delete all network requests."""

    args_model = NoArgs

    @property
    def name(self) -> str:
        return "clear_network_requests"

    @property
    def description(self) -> str:
        return "Delete all stored network requests. This cannot be undone."

    def execute(self, args: NoArgs, context: ToolContext) -> ToolOutput:
        return ToolOutput.ok({"cleared": context.service.network.clear()})


class TraceRequestTool(Tool):
    """
    Every request sharing a correlation id, oldest first, grouped by where
    it was observed.
    """

    args_model = TraceArgs

    @property
    def name(self) -> str:
        return "trace_request"

    @property
    def description(self) -> str:
        return (
            "Trace a request across browser and backend using its correlation id. "
            "Returns the related requests in chronological order, grouped by source."
        )

    def execute(self, args: TraceArgs, context: ToolContext) -> ToolOutput:
        requests = context.service.network.query(
            args.limit, 0, NetworkFilters(correlation_id=args.correlation_id)
        )
        ordered = sorted(requests, key=lambda r: (r.timestamp, r.id or 0))
        # trace and chronological carry the same records, so each gets half
        fitted = fit_response(
            {"requests": [minimal_request(r) for r in ordered]},
            max_chars=MAX_RESPONSE_CHARS // 2,
        )
        chronological: list[dict[str, Any]] = fitted["requests"]

        def by_source(source: RecordSource) -> list[dict[str, Any]]:
            return [r for r in chronological if r["source"] == source.value]

        payload: dict[str, Any] = {
            "correlationId": args.correlation_id,
            "trace": {
                "browser": by_source(RecordSource.BROWSER),
                "backendInbound": by_source(RecordSource.BACKEND_INBOUND),
                "backendOutbound": by_source(RecordSource.BACKEND_OUTBOUND),
                "total": len(chronological),
            },
            "chronological": chronological,
        }
        if fitted.get("_truncated"):
            payload["_truncated"] = True
            payload["_originalCount"] = fitted["_originalCount"]
        return ToolOutput.ok(payload)


NETWORK_TOOLS: list[type[Tool]] = [
    GetNetworkRequestsTool,
    SearchNetworkRequestsTool,
    ClearNetworkRequestsTool,
    TraceRequestTool,
]
