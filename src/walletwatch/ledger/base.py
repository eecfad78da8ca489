"""Abstract ledger protocols.

The tracker depends on these interfaces rather than on the Solana client
directly, so tests (and alternative RPC providers) can plug in their own.

Provider Types:
- LedgerClient: push subscriptions plus point queries against the chain
- TokenInfoProvider: name/symbol/price/supply for a token mint
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from walletwatch.ledger.models import LedgerEvent, Subscription, TokenBalanceChange, TokenInfo

ActivityCallback = Callable[[LedgerEvent], Awaitable[None]]
BalanceCallback = Callable[[TokenBalanceChange], Awaitable[None]]


@runtime_checkable
class LedgerClient(Protocol):
    """Protocol for the ledger event source."""

    async def subscribe_activity(self, address: str, callback: ActivityCallback) -> Subscription:
        """Deliver every confirmed transaction mentioning ``address``."""
        ...

    async def subscribe_token_balances(
        self, owner: str, callback: BalanceCallback
    ) -> Subscription:
        """Deliver SPL token account changes for accounts owned by ``owner``."""
        ...

    async def get_balance(self, address: str) -> float:
        """SOL balance of ``address``."""
        ...

    async def get_token_balances(self, owner: str) -> dict[str, float]:
        """Token mint -> UI balance for every SPL account ``owner`` holds."""
        ...

    async def get_recent_signature(self, address: str) -> str | None:
        """Most recent transaction signature for ``address``, if any."""
        ...


@runtime_checkable
class TokenInfoProvider(Protocol):
    """Protocol for token metadata lookups."""

    async def get_token_info(self, token_id: str) -> TokenInfo:
        """Resolve display metadata. Raises MetadataLookupError on failure."""
        ...
