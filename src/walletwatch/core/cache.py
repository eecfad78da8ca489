"""Short-lived de-duplication cache for transaction keys."""

from __future__ import annotations

import time
from collections.abc import Callable


class SeenCache:
    """Remembers keys for ``ttl_seconds`` so repeated deliveries can be dropped.

    The same transaction reaches the tracker once per subscription that
    mentions it, so a root wallet paying one of its own derived wallets
    arrives twice. ``check_and_add`` is a single synchronous step, which keeps
    it atomic on the event loop.
    """

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._seen: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, key: str) -> bool:
        expires = self._seen.get(key)
        return expires is not None and expires > self._clock()

    def check_and_add(self, key: str) -> bool:
        """Return True if ``key`` was already seen, otherwise record it."""
        if key in self:
            return True
        self._seen[key] = self._clock() + self._ttl
        return False

    def prune(self) -> int:
        """Drop expired keys. Returns the number removed."""
        now = self._clock()
        stale = [k for k, expires in self._seen.items() if expires <= now]
        for k in stale:
            del self._seen[k]
        return len(stale)

    def clear(self) -> None:
        self._seen.clear()
