"""Tests for the seen-key de-duplication cache."""

from __future__ import annotations

from walletwatch.core.cache import SeenCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestSeenCache:
    def test_first_sighting_is_new(self) -> None:
        cache = SeenCache(ttl_seconds=60, clock=FakeClock())
        assert cache.check_and_add("1:sig") is False
        assert cache.check_and_add("1:sig") is True

    def test_expires_after_ttl(self) -> None:
        clock = FakeClock()
        cache = SeenCache(ttl_seconds=60, clock=clock)
        cache.check_and_add("1:sig")

        clock.now = 61.0
        assert "1:sig" not in cache
        assert cache.check_and_add("1:sig") is False

    def test_prune_removes_expired(self) -> None:
        clock = FakeClock()
        cache = SeenCache(ttl_seconds=10, clock=clock)
        cache.check_and_add("old")
        clock.now = 5.0
        cache.check_and_add("new")

        clock.now = 12.0
        assert cache.prune() == 1
        assert len(cache) == 1
        assert "new" in cache

    def test_clear(self) -> None:
        cache = SeenCache(clock=FakeClock())
        cache.check_and_add("a")
        cache.clear()
        assert len(cache) == 0
