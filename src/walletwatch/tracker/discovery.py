"""Bounded store of addresses discovered through root-wallet activity."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Iterable

from walletwatch.tracker.models import TrackedAddress


class DiscoveryStore:
    """Per-root-wallet set of counterparty addresses with LRU eviction.

    Each root wallet gets its own ordered map. Entries stay ordered by
    ``last_updated`` because every refresh moves the entry to the end, so the
    eviction victim is always the first entry. Entries with equal timestamps
    keep insertion order.
    """

    def __init__(
        self,
        capacity: int,
        root_ids: Iterable[int] = (1, 2),
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._clock = clock
        self._stores: dict[int, OrderedDict[str, TrackedAddress]] = {
            root_id: OrderedDict() for root_id in root_ids
        }

    @property
    def capacity(self) -> int:
        return self._capacity

    def _store(self, root_id: int) -> OrderedDict[str, TrackedAddress]:
        try:
            return self._stores[root_id]
        except KeyError:
            raise KeyError(f"Unknown root wallet id: {root_id}") from None

    def record_activity(self, root_id: int, address: str) -> None:
        """Insert ``address`` or refresh its timestamp, evicting the stalest entry if full."""
        store = self._store(root_id)
        now = self._clock()

        entry = store.get(address)
        if entry is not None:
            entry.last_updated = now
            store.move_to_end(address)
            return

        if len(store) >= self._capacity:
            store.popitem(last=False)
        store[address] = TrackedAddress(address=address, last_updated=now)

    def contains(self, root_id: int, address: str) -> bool:
        return address in self._store(root_id)

    def size(self, root_id: int) -> int:
        return len(self._store(root_id))

    def addresses(self, root_id: int) -> list[str]:
        """Tracked addresses for ``root_id``, stalest first."""
        return list(self._store(root_id))

    def get(self, root_id: int, address: str) -> TrackedAddress | None:
        return self._store(root_id).get(address)

    def clear(self, root_id: int | None = None) -> None:
        if root_id is None:
            for store in self._stores.values():
                store.clear()
        else:
            self._store(root_id).clear()
