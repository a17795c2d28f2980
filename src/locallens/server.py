"""
HTTP API for LocalLens.

A ThreadingHTTPServer in front of a LensService. Producers (the browser
extension, the CLI log forwarder) POST batches; consumers GET pages,
clear tables, and tail new records over Server-Sent Events.

Routes:
    GET    /health                     status, time and table counts
    GET    /allowed-domains            producer-side domain allow-list
    POST   /logs                       {"logs": [...]} -> {"received", "stored"}
    GET    /logs                       ?limit&offset&level&url&startTime&endTime&source&backendProcess
    DELETE /logs                       -> {"cleared": N}
    GET    /logs/stream                SSE tail of new logs
    POST   /network-requests           {"requests": [...]} -> {"received", "stored"}
    GET    /network-requests           ?limit&offset&method&url&statusCode&...
    GET    /network-requests/<id>      -> {"request": {...}} or 404
    DELETE /network-requests           -> {"cleared": N}
    GET    /network-requests/stream    SSE tail of new requests
    GET    /network-config             -> {"config": {...}}
    POST   /network-config             partial update -> {"config", "message"}
    POST   /network-config/reset       -> {"config", "message"}

Errors are JSON {"error": "..."}: 400 for validation failures, 404 for
unknown routes and ids, 500 (with a generic message) for storage failures.
"""

import json
import logging
import queue
import threading
import time
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable
from urllib.parse import parse_qs, urlparse

from locallens.errors import LocalLensError, StorageError, ValidationError
from locallens.schema import EntryModel
from locallens.service import LensService
from locallens.store import ChangeNotifier

logger = logging.getLogger(__name__)

MAX_REQUEST_BYTES = 10 * 1024 * 1024
KEEPALIVE_SECONDS = 15.0
STREAM_QUEUE_SIZE = 1000

LOG_QUERY_PARAMS = ("level", "url", "startTime", "endTime", "source", "backendProcess")
NETWORK_QUERY_PARAMS = (
    "method",
    "url",
    "startTime",
    "endTime",
    "source",
    "backendProcess",
    "correlationId",
)


class RequestError(Exception):
    """A request the handler refuses, with the status to answer it with."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON; SQLite's json functions reject them
    raise ValueError(f"Unsupported JSON constant: {name}")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _first_values(query: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(query).items() if values}


def _status_code_param(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class LensHTTPServer(ThreadingHTTPServer):
    """
    ThreadingHTTPServer bound to a LensService.

    Attributes:
        service: Stores and capture config the handlers work on
        stopping: Set when the server shuts down; ends open streams
        keepalive_seconds: Idle interval between SSE keep-alive comments
    """

    daemon_threads = True

    def __init__(
        self,
        address: tuple[str, int],
        service: LensService,
        keepalive_seconds: float = KEEPALIVE_SECONDS,
    ) -> None:
        super().__init__(address, LensRequestHandler)
        self.service = service
        self.stopping = threading.Event()
        self.keepalive_seconds = keepalive_seconds

    @property
    def url(self) -> str:
        """Base URL the server is reachable on."""
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def shutdown(self) -> None:
        """Stop serving and release any open streams."""
        self.stopping.set()
        super().shutdown()


class LensRequestHandler(BaseHTTPRequestHandler):
    """Route table and JSON plumbing for the LocalLens API."""

    server: LensHTTPServer
    server_version = "LocalLens"

    # =========================================================================
    # Plumbing
    # =========================================================================

    @property
    def service(self) -> LensService:
        return self.server.service

    def log_message(self, format: str, *args: object) -> None:  # noqa: A003
        logger.debug("%s - %s", self.address_string(), format % args)

    def _send_cors_headers(self) -> None:
        origin = self.headers.get("Origin")
        self.send_header("Access-Control-Allow-Origin", origin or "*")
        if origin:
            self.send_header("Access-Control-Allow-Credentials", "true")
            self.send_header("Vary", "Origin")

    def _send_json(self, payload: dict[str, Any], status: int = 200) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self._send_cors_headers()
        self.end_headers()
        self.wfile.write(body)

    def _send_error(self, status: int, message: str) -> None:
        self._send_json({"error": message}, status=status)

    def _read_json(self) -> Any:
        try:
            length = int(self.headers.get("Content-Length", "0") or 0)
        except ValueError as e:
            raise RequestError(400, "Invalid Content-Length") from e
        if length < 0:
            raise RequestError(400, "Invalid Content-Length")
        if length > MAX_REQUEST_BYTES:
            raise RequestError(413, "Request body too large")
        raw = self.rfile.read(length) if length else b""
        if not raw:
            return None
        try:
            return json.loads(raw.decode("utf-8"), parse_constant=_reject_constant)
        except UnicodeDecodeError as e:
            raise RequestError(400, "Request body is not valid UTF-8") from e
        except ValueError as e:
            raise RequestError(400, "Invalid JSON body") from e

    def _dispatch(self, routes: dict[str, Callable[[dict[str, str]], None]]) -> None:
        parsed = urlparse(self.path)
        path = parsed.path.rstrip("/") or "/"
        params = _first_values(parsed.query)

        handler = routes.get(path)
        try:
            if handler is not None:
                handler(params)
            elif self.command == "GET" and path.startswith("/network-requests/"):
                self._get_network_request(path.rsplit("/", 1)[1])
            else:
                self._send_error(404, "Not found")
        except RequestError as e:
            self._send_error(e.status, e.message)
        except ValidationError as e:
            self._send_error(400, e.message)
        except StorageError:
            # Detail already logged by the store
            self._send_error(500, "Storage operation failed")
        except LocalLensError as e:
            logger.error("Request %s %s failed: %s", self.command, path, e)
            self._send_error(500, "Internal server error")

    # =========================================================================
    # Verbs
    # =========================================================================

    def do_OPTIONS(self) -> None:  # noqa: N802
        self.send_response(204)
        self._send_cors_headers()
        self.send_header("Access-Control-Allow-Methods", "GET, POST, DELETE, OPTIONS")
        self.send_header(
            "Access-Control-Allow-Headers",
            self.headers.get("Access-Control-Request-Headers") or "Content-Type",
        )
        self.send_header("Access-Control-Max-Age", "600")
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_GET(self) -> None:  # noqa: N802
        self._dispatch({
            "/health": self._health,
            "/allowed-domains": self._allowed_domains,
            "/logs": self._get_logs,
            "/logs/stream": lambda _: self._stream(self.service.logs.notifier),
            "/network-requests": self._get_network_requests,
            "/network-requests/stream": lambda _: self._stream(self.service.network.notifier),
            "/network-config": self._get_config,
        })

    def do_POST(self) -> None:  # noqa: N802
        self._dispatch({
            "/logs": self._post_logs,
            "/network-requests": self._post_network_requests,
            "/network-config": self._update_config,
            "/network-config/reset": self._reset_config,
        })

    def do_DELETE(self) -> None:  # noqa: N802
        self._dispatch({
            "/logs": lambda _: self._send_json({"cleared": self.service.logs.clear()}),
            "/network-requests": lambda _: self._send_json({"cleared": self.service.network.clear()}),
        })

    # =========================================================================
    # Routes
    # =========================================================================

    def _health(self, params: dict[str, str]) -> None:
        self._send_json({
            "status": "ok",
            "timestamp": _utc_now(),
            "counts": self.service.stats(),
        })

    def _allowed_domains(self, params: dict[str, str]) -> None:
        domains = self.service.settings.allowed_domains
        self._send_json({"enabled": bool(domains), "domains": domains})

    def _post_logs(self, params: dict[str, str]) -> None:
        result = self.service.ingest.ingest_logs(self._read_json())
        self._send_json(result.to_dict())

    def _get_logs(self, params: dict[str, str]) -> None:
        filters = {k: params[k] for k in LOG_QUERY_PARAMS if params.get(k)}
        logs = self.service.logs.query(
            params.get("limit", 100),
            params.get("offset", 0),
            filters,
        )
        self._send_json({"logs": [entry.to_wire() for entry in logs]})

    def _post_network_requests(self, params: dict[str, str]) -> None:
        result = self.service.ingest.ingest_network(self._read_json())
        self._send_json(result.to_dict())

    def _get_network_requests(self, params: dict[str, str]) -> None:
        filters: dict[str, Any] = {k: params[k] for k in NETWORK_QUERY_PARAMS if params.get(k)}
        status_code = _status_code_param(params.get("statusCode"))
        if status_code is not None:
            filters["statusCode"] = status_code
        requests = self.service.network.query(
            params.get("limit", 100),
            params.get("offset", 0),
            filters,
        )
        self._send_json({"requests": [entry.to_wire() for entry in requests]})

    def _get_network_request(self, request_id: str) -> None:
        entry = self.service.network.get_by_id(request_id)
        if entry is None:
            self._send_error(404, "Network request not found")
            return
        self._send_json({"request": entry.to_wire()})

    def _get_config(self, params: dict[str, str]) -> None:
        self._send_json({"config": self.service.capture_config.get().to_wire()})

    def _update_config(self, params: dict[str, str]) -> None:
        body = self._read_json()
        if not isinstance(body, dict):
            raise RequestError(400, "Config update must be a JSON object")
        config = self.service.capture_config.update(body)
        self._send_json({
            "config": config.to_wire(),
            "message": "Network capture configuration updated successfully",
        })

    def _reset_config(self, params: dict[str, str]) -> None:
        config = self.service.capture_config.reset()
        self._send_json({
            "config": config.to_wire(),
            "message": "Network capture configuration reset to defaults",
        })

    # =========================================================================
    # Live tail
    # =========================================================================

    def _stream(self, notifier: ChangeNotifier[Any]) -> None:
        """Write each newly stored record as an SSE event until disconnect."""
        events: queue.Queue[EntryModel] = queue.Queue(maxsize=STREAM_QUEUE_SIZE)

        def enqueue(entry: EntryModel) -> None:
            try:
                events.put_nowait(entry)
            except queue.Full:
                logger.warning("Dropping live-tail event for a slow %s client", notifier.name)

        # subscribed before the headers go out, so the client can't miss a record
        notifier.subscribe(enqueue)
        logger.debug("Live tail of %s opened by %s", notifier.name, self.address_string())
        poll = min(1.0, self.server.keepalive_seconds)
        try:
            self.send_response(200)
            self.send_header("Content-Type", "text/event-stream")
            self.send_header("Cache-Control", "no-cache")
            self.send_header("Connection", "keep-alive")
            self._send_cors_headers()
            self.end_headers()
            self.wfile.flush()
            last_write = time.monotonic()

            while not self.server.stopping.is_set():
                try:
                    entry = events.get(timeout=poll)
                except queue.Empty:
                    if time.monotonic() - last_write >= self.server.keepalive_seconds:
                        self.wfile.write(b": keep-alive\n\n")
                        self.wfile.flush()
                        last_write = time.monotonic()
                    continue
                data = json.dumps(entry.to_wire(), ensure_ascii=False)
                self.wfile.write(f"data: {data}\n\n".encode("utf-8"))
                self.wfile.flush()
                last_write = time.monotonic()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Live-tail client for %s disconnected", notifier.name)
        finally:
            notifier.unsubscribe(enqueue)
            self.close_connection = True
            logger.debug("Live tail of %s closed", notifier.name)


def create_server(
    service: LensService,
    host: str | None = None,
    port: int | None = None,
    keepalive_seconds: float = KEEPALIVE_SECONDS,
) -> LensHTTPServer:
    """
    Bind a server for a service; host and port default to its settings.

    Port 0 picks a free port (see ``server.server_address``).
    """
    address = (
        host if host is not None else service.settings.host,
        port if port is not None else service.settings.port,
    )
    return LensHTTPServer(address, service, keepalive_seconds=keepalive_seconds)


def serve_in_thread(server: LensHTTPServer) -> threading.Thread:
    """Run serve_forever on a daemon thread and return the thread."""
    thread = threading.Thread(
        target=server.serve_forever,
        name="locallens-http",
        daemon=True,
    )
    thread.start()
    return thread
