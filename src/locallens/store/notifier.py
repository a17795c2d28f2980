"""
Change notifier: fan-out of newly stored records to subscribers.

Subscribers are plain callables taking one record. publish() calls each of
them synchronously, on the publishing thread. A subscriber that raises is
logged and skipped, ingestion and the other subscribers carry on.

The subscriber list is copied under a lock before each publish, so
subscribe/unsubscribe may race freely with publication from concurrent
inserts.
"""

import logging
import threading
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Subscriber = Callable[[T], None]


class ChangeNotifier(Generic[T]):
    """Observer list for one event store."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._subscribers: list[Subscriber[T]] = []

    def subscribe(self, fn: Subscriber[T]) -> None:
        """Add a subscriber. Subscribing the same callable twice is a no-op."""
        with self._lock:
            if fn not in self._subscribers:
                self._subscribers.append(fn)

    def unsubscribe(self, fn: Subscriber[T]) -> bool:
        """Remove a subscriber. Returns False if it wasn't subscribed."""
        with self._lock:
            try:
                self._subscribers.remove(fn)
            except ValueError:
                return False
            return True

    def publish(self, record: T) -> None:
        """Deliver record to every current subscriber."""
        with self._lock:
            subscribers = list(self._subscribers)
        for fn in subscribers:
            try:
                fn(record)
            except Exception:
                logger.exception("Subscriber %r failed on %s record", fn, self.name)

    def __len__(self) -> int:
        """Return the number of subscribers."""
        with self._lock:
            return len(self._subscribers)
