"""Debounced batching of root-wallet token balance updates.

Balance changes arrive in bursts (a swap touches several token accounts, and
the node may push the same account more than once). Updates are collected per
root wallet and one message per wallet is sent when the window closes.

The window has a fixed deadline: the first update starts the timer and later
updates only add content, so a wallet under continuous activity still reports
at least once per window.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping

from walletwatch.core.exceptions import LedgerError, MetadataLookupError
from walletwatch.core.logging import get_logger
from walletwatch.ledger.base import TokenInfoProvider
from walletwatch.notifications.telegram import (
    format_balance_change_line,
    format_batch_update,
    format_new_token_line,
)
from walletwatch.tracker.models import PendingUpdate, WalletBook

logger = get_logger(__name__)

DeliverCallback = Callable[[int, str], Awaitable[object]]
SignatureResolver = Callable[[str], Awaitable[str | None]]


def is_slot_marker(signature: str) -> bool:
    """Placeholders like ``slot:123`` stand in for signatures we never saw."""
    return ":" in signature


class UpdateBatcher:
    """Per-wallet fixed-deadline debounce of PendingUpdates."""

    def __init__(
        self,
        books: Mapping[int, WalletBook],
        token_info: TokenInfoProvider,
        deliver: DeliverCallback,
        *,
        window_seconds: float = 10.0,
        resolve_signature: SignatureResolver | None = None,
    ) -> None:
        self._books = books
        self._token_info = token_info
        self._deliver = deliver
        self._window = window_seconds
        self._resolve_signature = resolve_signature
        self._flush_tasks: set[asyncio.Task[str | None]] = set()

    @property
    def window_seconds(self) -> float:
        return self._window

    def has_pending_timer(self, root_id: int) -> bool:
        return self._books[root_id].flush_handle is not None

    def enqueue(self, root_id: int, token_id: str, balance: float, signature: str) -> None:
        """Record the latest balance for ``token_id`` and make sure a flush is scheduled."""
        book = self._books[root_id]
        book.pending[token_id] = PendingUpdate(token_id=token_id, balance=balance, signature=signature)

        if book.flush_handle is None:
            loop = asyncio.get_running_loop()
            book.flush_handle = loop.call_later(self._window, self._on_timer, root_id)
            logger.debug("Batch window opened", wallet_id=root_id, window=self._window)

    def _on_timer(self, root_id: int) -> None:
        task = asyncio.create_task(self._run_flush(root_id))
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    async def _run_flush(self, root_id: int) -> str | None:
        try:
            return await self.flush(root_id)
        except Exception:
            logger.exception("Error processing batched updates", wallet_id=root_id)
            return None

    async def flush(self, root_id: int) -> str | None:
        """Send one message for everything pending on ``root_id``.

        Returns the delivered text, or None if there was nothing to report.
        """
        book = self._books[root_id]
        pending, book.pending = book.pending, {}
        if book.flush_handle is not None:
            book.flush_handle.cancel()
            book.flush_handle = None

        if not pending:
            return None

        new_tokens: list[str] = []
        balance_changes: list[str] = []
        signature: str | None = None

        for token_id, update in pending.items():
            previous = book.last_balances.get(token_id, 0.0)
            if update.balance == previous:
                continue

            try:
                info = await self._token_info.get_token_info(token_id)
            except MetadataLookupError as e:
                logger.warning(
                    "Skipping token in batch, metadata lookup failed",
                    wallet_id=root_id,
                    token_id=token_id,
                    error=e.message,
                )
                continue

            if previous == 0 and update.balance > 0:
                new_tokens.append(format_new_token_line(info.display_name, update.balance))
            else:
                balance_changes.append(
                    format_balance_change_line(info.display_name, previous, update.balance)
                )
            book.last_balances[token_id] = update.balance
            signature = update.signature

        if signature is not None and is_slot_marker(signature):
            signature = await self._lookup_signature(book)

        text = format_batch_update(
            root_id, book.address, new_tokens, balance_changes, signature=signature
        )
        if text is None:
            return None

        await self._deliver(root_id, text)
        logger.info(
            "Batched update flushed",
            wallet_id=root_id,
            new_tokens=len(new_tokens),
            balance_changes=len(balance_changes),
        )
        return text

    async def _lookup_signature(self, book: WalletBook) -> str | None:
        if self._resolve_signature is None:
            return None
        try:
            return await self._resolve_signature(book.address)
        except LedgerError as e:
            logger.debug("Could not resolve recent signature", wallet_id=book.wallet_id, error=e.message)
            return None

    def cancel(self, root_id: int | None = None) -> int:
        """Cancel pending windows without sending. Returns the number of dropped updates."""
        dropped = 0
        ids = [root_id] if root_id is not None else list(self._books)
        for rid in ids:
            book = self._books[rid]
            if book.flush_handle is not None:
                book.flush_handle.cancel()
                book.flush_handle = None
            dropped += len(book.pending)
            book.pending = {}
        return dropped

    async def drain(self) -> None:
        """Wait for in-flight flushes to finish."""
        if self._flush_tasks:
            await asyncio.gather(*self._flush_tasks, return_exceptions=True)
