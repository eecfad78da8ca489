"""Custom exceptions for walletwatch."""


class WalletWatchError(Exception):
    """Base exception for all walletwatch errors."""

    def __init__(self, message: str, *args: object) -> None:
        self.message = message
        super().__init__(message, *args)


class ConfigurationError(WalletWatchError):
    """Required configuration is missing or invalid. Fatal at startup."""


# Ledger errors
class LedgerError(WalletWatchError):
    """Base error for the Solana client layer."""


class TransientProviderError(LedgerError):
    """RPC timeout, connection failure or 5xx from the provider."""


class RPCResponseError(LedgerError):
    """The RPC node answered with a JSON-RPC error object."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class SubscriptionError(LedgerError):
    """A websocket subscription could not be established."""


class MetadataLookupError(LedgerError):
    """Token name, supply or price could not be resolved."""


# Notification errors
class NotificationError(WalletWatchError):
    """Base error for the messaging layer."""


class TelegramTransportError(NotificationError):
    """Telegram request failed for a reason other than throttling."""


class ThrottleError(TelegramTransportError):
    """Telegram rejected the request with 429; retry after the given delay."""

    def __init__(self, message: str, retry_after: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after


# Storage errors
class StorageError(WalletWatchError):
    """Base error for persisted state."""
