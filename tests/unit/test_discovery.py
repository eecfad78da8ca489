"""Tests for the bounded per-root discovery store."""

from __future__ import annotations

import pytest

from walletwatch.tracker.discovery import DiscoveryStore


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestRecordActivity:
    def test_new_address_is_tracked(self, clock: FakeClock) -> None:
        store = DiscoveryStore(capacity=3, clock=clock)
        store.record_activity(1, "Z")

        assert store.contains(1, "Z")
        assert not store.contains(2, "Z")
        assert store.size(1) == 1

    def test_repeat_activity_refreshes_timestamp(self, clock: FakeClock) -> None:
        store = DiscoveryStore(capacity=3, clock=clock)
        store.record_activity(1, "Z")
        clock.advance(5)
        store.record_activity(1, "Z")

        entry = store.get(1, "Z")
        assert entry is not None
        assert entry.last_updated == 1005.0
        assert store.size(1) == 1

    def test_size_never_exceeds_capacity(self, clock: FakeClock) -> None:
        store = DiscoveryStore(capacity=5, clock=clock)
        for i in range(50):
            store.record_activity(1, f"addr{i}")
            clock.advance(1)
            assert store.size(1) <= 5
        assert store.size(1) == 5

    def test_evicts_least_recently_updated(self, clock: FakeClock) -> None:
        store = DiscoveryStore(capacity=3, clock=clock)
        for address in ("A", "B", "C"):
            store.record_activity(1, address)
            clock.advance(1)

        # A becomes the freshest, so B is now the stalest
        store.record_activity(1, "A")
        clock.advance(1)
        store.record_activity(1, "D")

        assert store.addresses(1) == ["C", "A", "D"]
        assert not store.contains(1, "B")

    def test_ties_evict_in_insertion_order(self, clock: FakeClock) -> None:
        store = DiscoveryStore(capacity=2, clock=clock)
        store.record_activity(1, "A")
        store.record_activity(1, "B")
        store.record_activity(1, "C")

        assert store.addresses(1) == ["B", "C"]

    def test_roots_are_independent(self, clock: FakeClock) -> None:
        store = DiscoveryStore(capacity=1, clock=clock)
        store.record_activity(1, "A")
        store.record_activity(2, "B")

        assert store.contains(1, "A")
        assert store.contains(2, "B")


class TestClear:
    def test_clear_one_root(self, clock: FakeClock) -> None:
        store = DiscoveryStore(capacity=3, clock=clock)
        store.record_activity(1, "A")
        store.record_activity(2, "B")
        store.clear(1)

        assert store.size(1) == 0
        assert store.size(2) == 1

    def test_clear_all(self, clock: FakeClock) -> None:
        store = DiscoveryStore(capacity=3, clock=clock)
        store.record_activity(1, "A")
        store.record_activity(2, "B")
        store.clear()

        assert store.size(1) == 0
        assert store.size(2) == 0


class TestValidation:
    def test_unknown_root_raises(self) -> None:
        store = DiscoveryStore(capacity=3)
        with pytest.raises(KeyError):
            store.record_activity(3, "A")

    def test_capacity_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            DiscoveryStore(capacity=0)
