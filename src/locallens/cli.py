"""
CLI entry point for LocalLens.

Commands:
    serve       Run the HTTP API (ingestion, queries, live tails)
    mcp         Serve the agent tools over MCP stdio
    logs        Show stored console logs
    requests    Show stored network requests
    search      Search logs or network requests
    clear       Delete stored logs and/or requests
    config      Show, update or reset a running server's capture config
    tools       List the agent tools
    call        Call one agent tool and print its JSON result

Commands that read or clear data open the database directly; ``config``
talks to a running server, since the capture config lives in its memory.
"""

import json
import logging
import traceback
from pathlib import Path
from typing import Annotated, Any, NoReturn, Optional

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from locallens import __version__
from locallens.errors import LocalLensError
from locallens.schema import LogEntry, NetworkRequestEntry
from locallens.server import create_server
from locallens.service import LensService
from locallens.settings import load_settings
from locallens.tools import ToolContext, build_registry

app = typer.Typer(
    name="locallens",
    help="Capture browser and backend console logs and network traffic for local debugging.",
    add_completion=False,
    no_args_is_help=True,
)
config_app = typer.Typer(help="Inspect or change a running server's capture config.", no_args_is_help=True)
app.add_typer(config_app, name="config")

console = Console()
err_console = Console(stderr=True)

DbOption = Annotated[
    Optional[Path],
    typer.Option("--db", help="SQLite database path (default: $LOCALLENS_DB or ~/.locallens/locallens.db)."),
]
JsonOption = Annotated[bool, typer.Option("--json", help="Output results in JSON format.")]
ServerOption = Annotated[
    Optional[str],
    typer.Option("--server", help="Base URL of the running server (default: from host/port settings)."),
]

LEVEL_STYLES = {"error": "red", "warn": "yellow", "info": "cyan", "log": "white"}


def configure_logging(level: int) -> None:
    """Send all logging to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]locallens[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """
    LocalLens - console and network capture for local debugging.

    Producers POST batches to the HTTP API; people and agents query them
    back through the API, this CLI, or MCP tools.
    """
    ctx.obj = {"verbose": verbose}
    configure_logging(logging.DEBUG if verbose else logging.WARNING)


def _fail(message: str, json_output: bool = False, error: LocalLensError | None = None) -> NoReturn:
    if json_output:
        payload: dict[str, Any] = {"error": True, "message": message}
        if error is not None:
            payload.update(error.to_dict())
        print(json.dumps(payload, indent=2))
    else:
        console.print(f"[red]{escape(message)}[/red]")
        if error is not None and error.suggestion:
            console.print(f"[dim]{escape(error.suggestion)}[/dim]")
    raise typer.Exit(code=1)


def _open_service(db: Optional[Path], json_output: bool = False, **overrides: Any) -> LensService:
    try:
        settings = load_settings(db_path=db, **overrides)
        return LensService(settings)
    except LocalLensError as e:
        _fail(str(e), json_output, e)


def _clip(text: str | None, width: int) -> str:
    if not text:
        return ""
    text = text.replace("\n", " ")
    return escape(text if len(text) <= width else text[: width - 3] + "...")


def _print_logs(entries: list[LogEntry]) -> None:
    if not entries:
        console.print("[dim]No logs found.[/dim]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Time")
    table.add_column("Level", width=6)
    table.add_column("Message")
    table.add_column("Page", style="cyan")
    for entry in entries:
        style = LEVEL_STYLES.get(entry.level.value, "white")
        table.add_row(
            str(entry.id),
            entry.timestamp[:23],
            f"[{style}]{entry.level.value}[/{style}]",
            _clip(entry.message, 80),
            _clip(entry.page_url, 40),
        )
    console.print(table)


def _status_display(status: int | None) -> str:
    if status is None:
        return "[dim]pending[/dim]"
    if status >= 500:
        return f"[red]{status}[/red]"
    if status >= 400:
        return f"[yellow]{status}[/yellow]"
    return f"[green]{status}[/green]"


def _print_requests(entries: list[NetworkRequestEntry]) -> None:
    if not entries:
        console.print("[dim]No network requests found.[/dim]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Time")
    table.add_column("Method", style="cyan", width=7)
    table.add_column("Status", width=7)
    table.add_column("Duration", justify="right")
    table.add_column("URL")
    for entry in entries:
        duration = f"{entry.duration:.0f}ms" if entry.duration is not None else ""
        table.add_row(
            str(entry.id),
            entry.timestamp[:23],
            entry.method,
            _status_display(entry.status_code),
            duration,
            _clip(entry.url, 90),
        )
    console.print(table)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


# =============================================================================
# Servers
# =============================================================================


@app.command()
def serve(
    ctx: typer.Context,
    db: DbOption = None,
    host: Annotated[Optional[str], typer.Option("--host", help="Bind address.")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Port to listen on.")] = None,
    capture_config: Annotated[
        Optional[Path],
        typer.Option(
            "--capture-config",
            help="YAML file with the starting (and reset) capture config.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    max_entries: Annotated[
        Optional[int],
        typer.Option("--max-entries", help="Rows kept per table before the oldest are evicted."),
    ] = None,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Don't echo captured events to the log."),
    ] = False,
) -> None:
    """
    Run the HTTP API until interrupted.

    Example:
        $ locallens serve --port 8765 --capture-config capture.yaml
    """
    if not ctx.obj.get("verbose"):
        logging.getLogger().setLevel(logging.INFO)

    service = _open_service(
        db,
        host=host,
        port=port,
        capture_config_path=capture_config,
        max_entries=max_entries,
        echo_events=False if quiet else None,
    )
    try:
        server = create_server(service)
    except OSError as e:
        service.close()
        _fail(f"Could not bind {service.settings.host}:{service.settings.port}: {e}")

    logging.getLogger(__name__).info("LocalLens listening on %s (db: %s)", server.url, service.db.db_path)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Shutting down")
    finally:
        server.stopping.set()
        server.server_close()
        service.close()


@app.command()
def mcp(
    ctx: typer.Context,
    db: DbOption = None,
) -> None:
    """
    Serve the agent tools over MCP stdio.

    stdout carries the protocol; logs go to stderr.

    Example:
        $ locallens mcp --db ~/.locallens/locallens.db
    """
    from locallens.mcp_server import run_stdio

    if not ctx.obj.get("verbose"):
        logging.getLogger().setLevel(logging.INFO)

    with _open_service(db) as service:
        run_stdio(service)


# =============================================================================
# Queries
# =============================================================================


@app.command()
def logs(
    db: DbOption = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum number of logs.")] = 50,
    offset: Annotated[int, typer.Option("--offset", help="Logs to skip.")] = 0,
    level: Annotated[Optional[str], typer.Option("--level", "-l", help="log, info, warn or error.")] = None,
    url: Annotated[Optional[str], typer.Option("--url", help="Substring of the page URL.")] = None,
    source: Annotated[Optional[str], typer.Option("--source", help="browser or backend-console.")] = None,
    process: Annotated[Optional[str], typer.Option("--process", help="Backend process name.")] = None,
    json_output: JsonOption = False,
) -> None:
    """
    Show stored console logs, newest first.

    Example:
        $ locallens logs --level error -n 20
    """
    filters = {"level": level, "url": url, "source": source, "backend_process": process}
    with _open_service(db, json_output) as service:
        try:
            entries = service.logs.query(limit, offset, {k: v for k, v in filters.items() if v})
        except LocalLensError as e:
            _fail(e.message, json_output, e)
    if json_output:
        _print_json({"logs": [e.to_wire() for e in entries]})
    else:
        _print_logs(entries)


@app.command()
def requests(
    db: DbOption = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum number of requests.")] = 50,
    offset: Annotated[int, typer.Option("--offset", help="Requests to skip.")] = 0,
    method: Annotated[Optional[str], typer.Option("--method", "-m", help="HTTP method.")] = None,
    status: Annotated[Optional[int], typer.Option("--status", "-s", help="HTTP status code.")] = None,
    url: Annotated[Optional[str], typer.Option("--url", help="Substring of the URL.")] = None,
    correlation_id: Annotated[
        Optional[str],
        typer.Option("--correlation-id", help="Correlation id."),
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """
    Show stored network requests, newest first.

    Example:
        $ locallens requests --method POST --status 500
    """
    filters = {"method": method, "status_code": status, "url": url, "correlation_id": correlation_id}
    with _open_service(db, json_output) as service:
        try:
            entries = service.network.query(
                limit,
                offset,
                {k: v for k, v in filters.items() if v is not None},
            )
        except LocalLensError as e:
            _fail(e.message, json_output, e)
    if json_output:
        _print_json({"requests": [e.to_wire() for e in entries]})
    else:
        _print_requests(entries)


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Case-insensitive text to find.")],
    db: DbOption = None,
    network: Annotated[
        bool,
        typer.Option("--requests", "-r", help="Search network requests instead of logs."),
    ] = False,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum number of matches.")] = 50,
    json_output: JsonOption = False,
) -> None:
    """
    Search log messages and stack traces, or request URLs, headers and bodies.

    Example:
        $ locallens search "TypeError"
        $ locallens search users --requests
    """
    with _open_service(db, json_output) as service:
        store = service.network if network else service.logs
        try:
            entries = store.search(query, limit)
        except LocalLensError as e:
            _fail(e.message, json_output, e)

    if json_output:
        key = "requests" if network else "logs"
        _print_json({key: [e.to_wire() for e in entries]})
    elif network:
        _print_requests(entries)
    else:
        _print_logs(entries)


@app.command()
def clear(
    target: Annotated[
        str,
        typer.Argument(help="What to clear: logs, requests or all."),
    ] = "all",
    db: DbOption = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Don't ask for confirmation.")] = False,
    json_output: JsonOption = False,
) -> None:
    """
    Delete stored logs and/or network requests.

    Example:
        $ locallens clear logs --yes
    """
    if target not in ("logs", "requests", "all"):
        _fail(f"Unknown target '{target}': expected logs, requests or all", json_output)
    if not yes and not json_output:
        typer.confirm(f"Delete all stored {target}?", abort=True)

    cleared: dict[str, int] = {}
    with _open_service(db, json_output) as service:
        try:
            if target in ("logs", "all"):
                cleared["logs"] = service.logs.clear()
            if target in ("requests", "all"):
                cleared["requests"] = service.network.clear()
        except LocalLensError as e:
            _fail(e.message, json_output, e)

    if json_output:
        _print_json({"cleared": cleared})
    else:
        for name, count in cleared.items():
            console.print(f"[green]✓[/green] Cleared {count} {name}")


# =============================================================================
# Capture config (running server)
# =============================================================================


def _server_url(server: Optional[str]) -> str:
    if server:
        return server.rstrip("/")
    settings = load_settings()
    return f"http://{settings.host}:{settings.port}"


def _config_request(method: str, server: Optional[str], path: str, body: Any = None) -> dict[str, Any]:
    url = f"{_server_url(server)}{path}"
    try:
        with httpx.Client(timeout=5.0) as client:
            response = client.request(method, url, json=body)
    except httpx.RequestError as e:
        _fail(f"Could not reach LocalLens at {url}: {e}")
    try:
        payload = response.json()
    except ValueError:
        _fail(f"Unexpected response from {url}: HTTP {response.status_code}")
    if response.status_code >= 400:
        _fail(f"Server rejected the request: {payload.get('error', response.text)}")
    return payload


def _print_config(config: dict[str, Any]) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in config.items():
        table.add_row(key, json.dumps(value))
    console.print(table)


def _parse_assignment(item: str) -> tuple[str, Any]:
    key, sep, raw = item.partition("=")
    if not sep or not key:
        raise typer.BadParameter(f"expected key=value, got '{item}'")
    try:
        return key, json.loads(raw)
    except json.JSONDecodeError:
        return key, raw


@config_app.command("show")
def config_show(server: ServerOption = None, json_output: JsonOption = False) -> None:
    """Print the capture config in force on the server."""
    config = _config_request("GET", server, "/network-config")["config"]
    if json_output:
        _print_json(config)
    else:
        _print_config(config)


@config_app.command("set")
def config_set(
    assignments: Annotated[
        list[str],
        typer.Argument(help="key=value pairs; values are parsed as JSON when possible."),
    ],
    server: ServerOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Merge changes into the server's capture config.

    Example:
        $ locallens config set captureMode=include 'urlPatterns=["*/api/*"]'
    """
    changes = dict(_parse_assignment(item) for item in assignments)
    config = _config_request("POST", server, "/network-config", changes)["config"]
    if json_output:
        _print_json(config)
    else:
        console.print("[green]✓[/green] Capture config updated")
        _print_config(config)


@config_app.command("reset")
def config_reset(server: ServerOption = None, json_output: JsonOption = False) -> None:
    """Return the server's capture config to its defaults."""
    config = _config_request("POST", server, "/network-config/reset")["config"]
    if json_output:
        _print_json(config)
    else:
        console.print("[green]✓[/green] Capture config reset")
        _print_config(config)


# =============================================================================
# Agent tools
# =============================================================================


@app.command()
def tools(json_output: JsonOption = False) -> None:
    """List the agent tools and what they do."""
    registry = build_registry()
    if json_output:
        _print_json(registry.describe())
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool", style="cyan")
    table.add_column("Description")
    for tool in sorted(registry, key=lambda t: t.name):
        table.add_row(tool.name, tool.description)
    console.print(table)


@app.command()
def call(
    name: Annotated[str, typer.Argument(help="Tool name (see `locallens tools`).")],
    args: Annotated[
        Optional[str],
        typer.Argument(help="Tool arguments as a JSON object."),
    ] = None,
    db: DbOption = None,
    debug: Annotated[bool, typer.Option("--debug", help="Show tracebacks on failure.")] = False,
) -> None:
    """
    Call one agent tool and print its JSON result.

    Example:
        $ locallens call get_console_logs '{"level": "error", "limit": 5}'
    """
    try:
        parsed = json.loads(args) if args else {}
    except json.JSONDecodeError as e:
        _fail(f"Arguments must be a JSON object: {e}", json_output=True)
    if not isinstance(parsed, dict):
        _fail("Arguments must be a JSON object", json_output=True)

    registry = build_registry()
    with _open_service(db, json_output=True) as service:
        try:
            output = registry.call(name, parsed, ToolContext(service=service, metadata={"transport": "cli"}))
        except LocalLensError as e:
            if debug:
                err_console.print(traceback.format_exc())
            _fail(e.message, json_output=True, error=e)

    if not output.success:
        _fail(output.error or f"{name} failed", json_output=True)
    _print_json(output.data)


if __name__ == "__main__":
    app()
