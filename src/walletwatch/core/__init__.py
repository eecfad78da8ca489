"""Core utilities: logging, exceptions, constants, caches."""

from walletwatch.core.cache import SeenCache
from walletwatch.core.exceptions import WalletWatchError
from walletwatch.core.logging import get_logger, setup_logging

__all__ = [
    "SeenCache",
    "WalletWatchError",
    "get_logger",
    "setup_logging",
]
