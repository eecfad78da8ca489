"""Storage layer: JSON state file."""

from walletwatch.storage.state import EngineStateStore

__all__ = ["EngineStateStore"]
