"""Normalized ledger events and token metadata."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from walletwatch.core.constants import PUMP_TOKEN_SUFFIX


@dataclass(frozen=True)
class LedgerEvent:
    """A confirmed transaction that mentions a subscribed address."""

    signature: str
    source: str  # subscribed address the event was delivered for
    involved_addresses: tuple[str, ...] = ()
    token_id: str | None = None
    balance_delta: float | None = None  # SOL change of ``source``
    slot: int | None = None


@dataclass(frozen=True)
class TokenBalanceChange:
    """SPL token account update for an owner we subscribed to."""

    owner: str
    token_id: str
    balance: float
    signature: str


@dataclass(frozen=True)
class TokenInfo:
    """Display metadata for a token mint."""

    token_id: str
    name: str
    symbol: str
    price: float = 0.0
    supply: float = 0.0
    decimals: int = 9

    @property
    def market_cap(self) -> float:
        return self.supply * self.price

    @property
    def is_pump_token(self) -> bool:
        return self.token_id.lower().endswith(PUMP_TOKEN_SUFFIX)

    @property
    def display_name(self) -> str:
        if self.is_pump_token:
            return f"🎯 PUMP {self.name}"
        return f"💰 {self.name or self.token_id}"


@dataclass
class Subscription:
    """Cancel handle for a ledger subscription.

    The teardown coroutine is bound when the subscription is created, so
    callers never need to know which RPC method opened it.
    """

    address: str
    kind: str
    _cancel: Callable[[], Awaitable[None]] = field(repr=False)
    cancelled: bool = False

    async def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        await self._cancel()
