"""Watch engine: lifecycle and event orchestration.

Flow:
1. start() subscribes both root wallets (activity + SPL token balances)
2. Root activity names counterparties -> DiscoveryStore (and their own subscriptions)
3. Any event in a root's address space that touches a token -> CorrelationStateMachine
4. CONFIRM -> token metadata -> alert to the channel
5. Root token balance changes -> UpdateBatcher -> one message per window

All handlers run on the event loop; ``WalletBook`` holds the per-root state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping

from walletwatch.core.cache import SeenCache
from walletwatch.core.exceptions import (
    LedgerError,
    MetadataLookupError,
    StorageError,
)
from walletwatch.core.logging import get_logger
from walletwatch.ledger.base import LedgerClient, TokenInfoProvider
from walletwatch.ledger.models import LedgerEvent, Subscription, TokenBalanceChange
from walletwatch.notifications.dispatcher import NotificationDispatcher
from walletwatch.notifications.telegram import format_token_alert
from walletwatch.storage.state import EngineStateStore
from walletwatch.tracker.batcher import UpdateBatcher
from walletwatch.tracker.correlation import Action, CorrelationStateMachine
from walletwatch.tracker.discovery import DiscoveryStore
from walletwatch.tracker.models import (
    EngineStatus,
    LifecycleResult,
    RootWallet,
    StatusReport,
    WalletBook,
)

logger = get_logger(__name__)


class WatchEngine:
    """Two-root wallet watcher.

    Usage:
        engine = WatchEngine(ledger, token_info, dispatcher,
                             root_addresses={1: addr1, 2: addr2}, channel_id=chat)
        await engine.start()
        ...
        await engine.stop()
    """

    def __init__(
        self,
        ledger: LedgerClient,
        token_info: TokenInfoProvider,
        dispatcher: NotificationDispatcher,
        *,
        root_addresses: Mapping[int, str],
        channel_id: str,
        capacity: int = 1000,
        update_delay: float = 10.0,
        max_balance_change: float = 25.0,
        subscribe_derived: bool = True,
        seen_cache: SeenCache | None = None,
        state_store: EngineStateStore | None = None,
    ) -> None:
        self._ledger = ledger
        self._token_info = token_info
        self._dispatcher = dispatcher
        self._channel_id = channel_id
        self._max_balance_change = max_balance_change
        self._subscribe_derived = subscribe_derived
        self._state_store = state_store

        self._roots = {wid: RootWallet(wallet_id=wid, address=addr) for wid, addr in root_addresses.items()}
        self._root_address_set = frozenset(root_addresses.values())
        self.books: dict[int, WalletBook] = {wid: WalletBook(root=root) for wid, root in self._roots.items()}

        self.discovery = DiscoveryStore(capacity, root_ids=tuple(self._roots))
        self.correlation = CorrelationStateMachine(root_addresses.values())
        self.seen = seen_cache if seen_cache is not None else SeenCache()
        self.batcher = UpdateBatcher(
            self.books,
            token_info,
            self._deliver_batch,
            window_seconds=update_delay,
            resolve_signature=ledger.get_recent_signature,
        )

        self._status = EngineStatus.STOPPED
        self._lifecycle_lock = asyncio.Lock()

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def is_tracking(self) -> bool:
        return self._status is EngineStatus.TRACKING

    @property
    def root_addresses(self) -> dict[int, str]:
        return {wid: root.address for wid, root in self._roots.items()}

    def subscription_count(self) -> int:
        return sum(len(b.subscriptions) + len(b.derived_subscriptions) for b in self.books.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> LifecycleResult:
        async with self._lifecycle_lock:
            if self._status in (EngineStatus.TRACKING, EngineStatus.STARTING):
                return LifecycleResult.ALREADY

            self._status = EngineStatus.STARTING
            self.discovery.clear()
            self.seen.clear()
            self.batcher.cancel()
            # Seeded holdings must compare against zero so the first window reports them
            for book in self.books.values():
                book.last_balances.clear()

            try:
                for book in self.books.values():
                    await self._subscribe_root(book)
            except LedgerError as e:
                logger.error("Failed to start tracking", error=e.message)
                await self._cancel_all_subscriptions()
                self._status = EngineStatus.STOPPED
                return LifecycleResult.FAILED

            self._status = EngineStatus.TRACKING
            self._persist(True)
            logger.info("Tracking started", roots=self.root_addresses)

        for book in self.books.values():
            await self._seed_balances(book)
        return LifecycleResult.OK

    async def stop(self) -> LifecycleResult:
        async with self._lifecycle_lock:
            if self._status is EngineStatus.STOPPED:
                return LifecycleResult.ALREADY

            self._status = EngineStatus.STOPPING
            dropped = self.batcher.cancel()
            await self._cancel_all_subscriptions()
            self._status = EngineStatus.STOPPED
            self._persist(False)
            logger.info("Tracking stopped", dropped_updates=dropped)
            return LifecycleResult.OK

    async def close(self) -> None:
        """Stop without touching the persisted flag (process shutdown)."""
        async with self._lifecycle_lock:
            self.batcher.cancel()
            await self._cancel_all_subscriptions()
            self._status = EngineStatus.STOPPED
        await self.batcher.drain()

    def _persist(self, is_tracking: bool) -> None:
        if self._state_store is None:
            return
        try:
            self._state_store.save(is_tracking)
        except StorageError as e:
            logger.warning("Could not persist tracking state", error=e.message)

    async def _subscribe_root(self, book: WalletBook) -> None:
        root_id = book.wallet_id
        book.subscriptions.append(
            await self._ledger.subscribe_activity(book.address, self._activity_handler(root_id))
        )
        book.subscriptions.append(
            await self._ledger.subscribe_token_balances(book.address, self._balance_handler(root_id))
        )
        logger.info("Monitoring root wallet", wallet_id=root_id, address=book.address)

    async def _cancel_all_subscriptions(self) -> None:
        subs: list[Subscription] = []
        for book in self.books.values():
            subs.extend(book.subscriptions)
            subs.extend(book.derived_subscriptions.values())
            book.subscriptions = []
            book.derived_subscriptions = {}
        results = await asyncio.gather(*(s.cancel() for s in subs), return_exceptions=True)
        for sub, result in zip(subs, results, strict=True):
            if isinstance(result, Exception):
                logger.warning("Failed to cancel subscription", address=sub.address, error=str(result))

    async def _seed_balances(self, book: WalletBook) -> None:
        """Queue current holdings so the first window reports them."""
        try:
            balances = await self._ledger.get_token_balances(book.address)
        except LedgerError as e:
            logger.warning("Could not load initial token balances", wallet_id=book.wallet_id, error=e.message)
            return
        if not self.is_tracking:
            return
        for token_id, balance in balances.items():
            self.batcher.enqueue(book.wallet_id, token_id, balance, f"refresh:{book.wallet_id}")

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _activity_handler(self, root_id: int) -> Callable[[LedgerEvent], Awaitable[None]]:
        async def handler(event: LedgerEvent) -> None:
            await self.handle_activity(root_id, event)

        return handler

    def _balance_handler(self, root_id: int) -> Callable[[TokenBalanceChange], Awaitable[None]]:
        async def handler(change: TokenBalanceChange) -> None:
            await self.handle_balance_change(root_id, change)

        return handler

    async def handle_activity(self, root_id: int, event: LedgerEvent) -> None:
        """Process one transaction delivered for ``root_id``'s address space."""
        if not self.is_tracking:
            return
        if self.seen.check_and_add(f"{root_id}:{event.source}:{event.signature}"):
            return

        book = self.books[root_id]
        try:
            if event.source == book.address:
                await self._discover_counterparties(root_id, event)
            elif self.discovery.contains(root_id, event.source):
                self.discovery.record_activity(root_id, event.source)
            else:
                # Evicted after the notification was queued
                return

            if event.token_id:
                await self._correlate(root_id, event, event.token_id)
        except Exception:
            logger.exception("Error handling activity", wallet_id=root_id, signature=event.signature)

    async def handle_balance_change(self, root_id: int, change: TokenBalanceChange) -> None:
        if not self.is_tracking:
            return
        self.batcher.enqueue(root_id, change.token_id, change.balance, change.signature)

    async def _discover_counterparties(self, root_id: int, event: LedgerEvent) -> None:
        if event.balance_delta is not None and abs(event.balance_delta) > self._max_balance_change:
            logger.debug(
                "Ignoring large balance change",
                wallet_id=root_id,
                signature=event.signature,
                delta=event.balance_delta,
            )
            return

        new_addresses: list[str] = []
        for address in event.involved_addresses:
            if address in self._root_address_set:
                continue
            known = self.discovery.contains(root_id, address)
            self.discovery.record_activity(root_id, address)
            if not known:
                new_addresses.append(address)
                logger.info("Added new wallet to tracking", wallet_id=root_id, address=address)

        if new_addresses and self._subscribe_derived:
            await self._sync_derived_subscriptions(root_id, new_addresses)

    async def _sync_derived_subscriptions(self, root_id: int, new_addresses: list[str]) -> None:
        book = self.books[root_id]

        evicted = [a for a in book.derived_subscriptions if not self.discovery.contains(root_id, a)]
        for address in evicted:
            await book.derived_subscriptions.pop(address).cancel()
        if evicted:
            logger.debug("Dropped evicted wallet subscriptions", wallet_id=root_id, count=len(evicted))

        for address in new_addresses:
            if address in book.derived_subscriptions or not self.discovery.contains(root_id, address):
                continue
            try:
                sub = await self._ledger.subscribe_activity(address, self._activity_handler(root_id))
            except LedgerError as e:
                logger.warning("Could not subscribe to wallet", wallet_id=root_id, address=address, error=e.message)
                continue
            if not self.is_tracking:
                await sub.cancel()
                return
            book.derived_subscriptions[address] = sub

    async def _correlate(self, root_id: int, event: LedgerEvent, token_id: str) -> None:
        action = self.correlation.observe(root_id, token_id)
        if action is not Action.CONFIRM:
            return
        if self.seen.check_and_add(f"{event.signature}:{token_id}"):
            return

        try:
            info = await self._token_info.get_token_info(token_id)
        except MetadataLookupError as e:
            logger.warning("Skipping alert, metadata lookup failed", token_id=token_id, error=e.message)
            return

        logger.info(
            "Token confirmed across wallets",
            wallet_id=root_id,
            wallet=event.source,
            token_id=token_id,
            symbol=info.symbol,
            signature=event.signature,
        )
        if not self.is_tracking:
            return
        await self._dispatcher.send(
            self._channel_id,
            format_token_alert(info, root_id, event.source, event.signature),
        )

    async def _deliver_batch(self, root_id: int, text: str) -> None:
        if not self.is_tracking:
            return
        await self._dispatcher.send(self._channel_id, text)

    # ------------------------------------------------------------------
    # Status and maintenance
    # ------------------------------------------------------------------

    async def status_report(self) -> StatusReport:
        sol_balances: dict[int, float | None] = {}
        for wid, root in self._roots.items():
            try:
                sol_balances[wid] = await self._ledger.get_balance(root.address)
            except LedgerError as e:
                logger.debug("Could not fetch SOL balance", wallet_id=wid, error=e.message)
                sol_balances[wid] = None

        return StatusReport(
            status=self._status,
            discovered={wid: self.discovery.size(wid) for wid in self._roots},
            sol_balances=sol_balances,
            correlation=self.correlation.counts(),
            subscriptions=self.subscription_count(),
        )

    def prune_seen(self) -> int:
        removed = self.seen.prune()
        if removed:
            logger.debug("Pruned seen cache", removed=removed, remaining=len(self.seen))
        return removed
