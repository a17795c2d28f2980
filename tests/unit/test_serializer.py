"""
Unit tests for the ingestion serializer and change notifier.

Tests cover:
- Mutual exclusion and FIFO admission
- Release of the permit when the callable raises
- Subscriber delivery, unsubscription and failure isolation
"""

import logging
import threading
import time

import pytest

from locallens.store import ChangeNotifier, IngestionSerializer


# =============================================================================
# IngestionSerializer
# =============================================================================


class TestIngestionSerializer:
    """Tests for the FIFO gate."""

    def test_returns_result(self) -> None:
        """with_lock passes through the callable's return value."""
        serializer = IngestionSerializer("t")
        assert serializer.with_lock(lambda a, b: a + b, 2, 3) == 5

    def test_mutual_exclusion(self) -> None:
        """Only one callable runs at a time."""
        serializer = IngestionSerializer("t")
        active = 0
        peak = 0
        guard = threading.Lock()

        def work() -> None:
            nonlocal active, peak
            with guard:
                active += 1
                peak = max(peak, active)
            time.sleep(0.01)
            with guard:
                active -= 1

        threads = [threading.Thread(target=serializer.with_lock, args=(work,)) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert peak == 1

    def test_fifo_order(self) -> None:
        """Waiters are admitted in arrival order."""
        serializer = IngestionSerializer("t")
        order: list[int] = []
        release = threading.Event()

        def blocker() -> None:
            release.wait(timeout=5)

        first = threading.Thread(target=serializer.with_lock, args=(blocker,))
        first.start()
        while serializer.waiting < 1:
            time.sleep(0.001)

        threads = []
        for i in range(5):
            t = threading.Thread(target=serializer.with_lock, args=(order.append, i))
            t.start()
            # wait until this caller holds its ticket before starting the next
            while serializer.waiting < i + 2:
                time.sleep(0.001)
            threads.append(t)

        release.set()
        first.join()
        for t in threads:
            t.join()

        assert order == [0, 1, 2, 3, 4]

    def test_released_on_exception(self) -> None:
        """A raising callable doesn't wedge later callers."""
        serializer = IngestionSerializer("t")

        def boom() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            serializer.with_lock(boom)

        assert serializer.waiting == 0
        assert serializer.with_lock(lambda: "ok") == "ok"

    def test_repr(self) -> None:
        """Repr names the serializer."""
        assert "logs" in repr(IngestionSerializer("logs"))


# =============================================================================
# ChangeNotifier
# =============================================================================


class TestChangeNotifier:
    """Tests for the observer list."""

    def test_publish_to_subscribers(self) -> None:
        """Every subscriber receives each record."""
        notifier: ChangeNotifier[int] = ChangeNotifier("t")
        a: list[int] = []
        b: list[int] = []
        notifier.subscribe(a.append)
        notifier.subscribe(b.append)

        notifier.publish(1)
        notifier.publish(2)

        assert a == [1, 2]
        assert b == [1, 2]

    def test_duplicate_subscribe_ignored(self) -> None:
        """Subscribing twice delivers once."""
        notifier: ChangeNotifier[int] = ChangeNotifier()
        seen: list[int] = []
        notifier.subscribe(seen.append)
        notifier.subscribe(seen.append)
        notifier.publish(7)
        assert seen == [7]
        assert len(notifier) == 1

    def test_unsubscribe(self) -> None:
        """Unsubscribed callables stop receiving."""
        notifier: ChangeNotifier[int] = ChangeNotifier()
        seen: list[int] = []
        notifier.subscribe(seen.append)
        assert notifier.unsubscribe(seen.append) is True
        notifier.publish(1)
        assert seen == []
        assert notifier.unsubscribe(seen.append) is False

    def test_failing_subscriber_isolated(self, caplog: pytest.LogCaptureFixture) -> None:
        """One subscriber raising doesn't stop the others."""
        notifier: ChangeNotifier[int] = ChangeNotifier("t")
        seen: list[int] = []

        def bad(_: int) -> None:
            raise ValueError("nope")

        notifier.subscribe(bad)
        notifier.subscribe(seen.append)
        with caplog.at_level(logging.ERROR):
            notifier.publish(3)

        assert seen == [3]
        assert "failed" in caplog.text

    def test_unsubscribe_during_publish(self) -> None:
        """A subscriber removing itself mid-publish is safe."""
        notifier: ChangeNotifier[int] = ChangeNotifier()
        seen: list[int] = []

        def once(record: int) -> None:
            seen.append(record)
            notifier.unsubscribe(once)

        notifier.subscribe(once)
        notifier.subscribe(seen.append)
        notifier.publish(1)
        notifier.publish(2)

        assert seen == [1, 1, 2]
