"""
Console log tools.

Tools:
    - get_console_logs: Page through stored logs with filters
    - search_logs: Substring search over messages and stack traces
    - clear_console_logs: Delete every stored log
"""

from pydantic import Field

from locallens.schema import LogFilters, LogLevel, SearchFilters
from locallens.tools.base import NoArgs, PagedArgs, Tool, ToolContext, ToolOutput
from locallens.tools.shaping import fit_response, log_payload


class GetLogsArgs(PagedArgs):
    """Arguments for get_console_logs."""

    offset: int = Field(default=0, ge=0, description="Number of entries to skip.")
    level: LogLevel | None = Field(default=None, description="Exact console level.")
    url: str | None = Field(default=None, description="Substring of the page URL.")
    start_time: str | None = Field(default=None, description="ISO-8601 lower bound (inclusive).")
    end_time: str | None = Field(default=None, description="ISO-8601 upper bound (inclusive).")
    source: str | None = Field(default=None, description="'browser' or 'backend-console'.")
    backend_process: str | None = Field(default=None, description="Backend process name.")

    def filters(self) -> LogFilters:
        return LogFilters(
            level=self.level,
            url=self.url,
            start_time=self.start_time,
            end_time=self.end_time,
            source=self.source,
            backend_process=self.backend_process,
        )


class SearchLogsArgs(PagedArgs):
    """Arguments for search_logs."""

    query: str = Field(..., description="Case-insensitive substring to find.")
    source: str | None = Field(default=None, description="'browser' or 'backend-console'.")
    backend_process: str | None = Field(default=None, description="Backend process name.")


class GetConsoleLogsTool(Tool):
    """Page through console logs, newest first."""

    args_model = GetLogsArgs

    @property
    def name(self) -> str:
        return "get_console_logs"

    @property
    def description(self) -> str:
        return (
            "Retrieve console logs captured from web pages and backend processes, "
            "newest first, with optional level, URL, time range and source filters."
        )

    def execute(self, args: GetLogsArgs, context: ToolContext) -> ToolOutput:
        logs = context.service.logs.query(args.limit, args.offset, args.filters())
        return ToolOutput.ok(fit_response({"logs": log_payload(logs)}))


class SearchLogsTool(Tool):
    """Search log messages and stack traces."""

    args_model = SearchLogsArgs

    @property
    def name(self) -> str:
        return "search_logs"

    @property
    def description(self) -> str:
        return (
            "Search console logs by case-insensitive partial match across "
            "messages and stack traces."
        )

    def execute(self, args: SearchLogsArgs, context: ToolContext) -> ToolOutput:
        filters = SearchFilters(source=args.source, backend_process=args.backend_process)
        logs = context.service.logs.search(args.query, args.limit, filters)
        return ToolOutput.ok(fit_response({"logs": log_payload(logs)}))


class ClearConsoleLogsTool(Tool):
    """Delete all console logs."""

    args_model = NoArgs

    @property
    def name(self) -> str:
        return "clear_console_logs"

    @property
    def description(self) -> str:
        return "Delete all stored console logs. This cannot be undone."

    def execute(self, args: NoArgs, context: ToolContext) -> ToolOutput:
        return ToolOutput.ok({"cleared": context.service.logs.clear()})


LOG_TOOLS: list[type[Tool]] = [GetConsoleLogsTool, SearchLogsTool, ClearConsoleLogsTool]
