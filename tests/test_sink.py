"""Tests for result sinks."""

from __future__ import annotations

import threading

from filefinder.search.sink import CollectingSink, DeliveredSet


class TestDeliveredSet:
    """Test DeliveredSet deduplication."""

    def test_first_add_wins(self) -> None:
        delivered = DeliveredSet()

        assert delivered.add("/a") is True
        assert delivered.add("/a") is False
        assert "/a" in delivered
        assert len(delivered) == 1

    def test_concurrent_adds_deliver_once(self) -> None:
        delivered = DeliveredSet()
        winners = []

        def worker() -> None:
            for i in range(200):
                if delivered.add(f"/path/{i}"):
                    winners.append(i)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(winners) == list(range(200))


class TestCollectingSink:
    """Test CollectingSink bookkeeping."""

    def test_collects_in_order(self) -> None:
        sink = CollectingSink()
        sink.on_match("/b")
        sink.on_match("/a")

        assert sink.matches == ["/b", "/a"]
        assert not sink.finished.is_set()

    def test_complete(self) -> None:
        sink = CollectingSink()
        sink.on_complete()

        assert sink.completed
        assert sink.failure is None
        assert sink.finished.is_set()

    def test_failure(self) -> None:
        sink = CollectingSink()
        sink.on_failure("no index")

        assert not sink.completed
        assert sink.failure == "no index"
        assert sink.finished.is_set()
