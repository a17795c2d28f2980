"""
LocalLens - Local capture store for console logs and network traffic.

LocalLens sits between the producers of debugging telemetry (an instrumented
web page, a wrapped backend process) and the consumers that want to read it
back (a developer, an automated agent). It provides:
- A size-bounded SQLite event store for console logs and network requests
- A configurable capture filter for network traffic
- An HTTP API for producers and live-tail consumers
- A tool-call interface for agents (also served over MCP stdio)

Example usage:
    $ locallens serve --port 8765
    $ locallens logs --level error
    $ locallens mcp
"""

__version__ = "0.1.0"
__author__ = "LocalLens Contributors"

__all__ = [
    "__version__",
    "__author__",
]
