"""Wallet tracking: discovery, correlation, batching and the engine that drives them.

Usage:
    uv run -m walletwatch.tracker

Or in code:
    from walletwatch.tracker.__main__ import watch_lifespan
    async with watch_lifespan(settings) as state:
        await state.engine.start()
"""

from walletwatch.tracker.models import EngineStatus, LifecycleResult

__all__ = ["EngineStatus", "LifecycleResult"]
