"""Ledger access: Solana RPC/websocket client and token metadata."""

from walletwatch.ledger.base import LedgerClient, TokenInfoProvider
from walletwatch.ledger.models import LedgerEvent, Subscription, TokenBalanceChange, TokenInfo
from walletwatch.ledger.solana import SolanaClient
from walletwatch.ledger.tokens import TokenInfoResolver

__all__ = [
    "LedgerClient",
    "LedgerEvent",
    "SolanaClient",
    "Subscription",
    "TokenBalanceChange",
    "TokenInfo",
    "TokenInfoProvider",
    "TokenInfoResolver",
]
