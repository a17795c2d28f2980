"""
Ingestion serializer: one batch insert at a time, first come first served.

Each event store owns one IngestionSerializer. Every mutating operation on
that store runs through ``with_lock``, so at most one of its transactions
is open at any moment, and waiting callers are admitted in arrival order.

The lock is a ticket lock on a threading.Condition. threading.Lock makes
no ordering promise, and a burst of producers must not starve an early
caller.
"""

import threading
from contextlib import contextmanager
from typing import Callable, Generator, TypeVar

T = TypeVar("T")


class IngestionSerializer:
    """
    FIFO mutual-exclusion gate.

    Usage:
        serializer = IngestionSerializer("logs")
        stored = serializer.with_lock(do_insert, batch)

    The callable is responsible for its own transaction: it must roll back
    anything it started before raising. The permit is released whether
    the callable returns or raises.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._cond = threading.Condition()
        self._next_ticket = 0
        self._now_serving = 0

    @contextmanager
    def hold(self) -> Generator[None, None, None]:
        """Wait for this caller's turn, then hold the permit for the block."""
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._now_serving:
                self._cond.wait()
        try:
            yield
        finally:
            with self._cond:
                self._now_serving += 1
                self._cond.notify_all()

    def with_lock(self, fn: Callable[..., T], *args: object, **kwargs: object) -> T:
        """Run fn(*args, **kwargs) while holding the permit and return its result."""
        with self.hold():
            return fn(*args, **kwargs)

    @property
    def waiting(self) -> int:
        """Callers queued or running (0 when idle)."""
        with self._cond:
            return self._next_ticket - self._now_serving

    def __repr__(self) -> str:
        """String representation of the serializer."""
        return f"<IngestionSerializer: {self.name} waiting={self.waiting}>"
