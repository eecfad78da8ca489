"""Periodic maintenance jobs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from walletwatch.core.logging import get_logger

if TYPE_CHECKING:
    from walletwatch.tracker.engine import WatchEngine

logger = get_logger(__name__)


def create_scheduler() -> AsyncIOScheduler:
    """Create a new scheduler instance."""
    return AsyncIOScheduler(timezone="UTC")


async def prune_seen_job(engine: WatchEngine) -> None:
    """Expire old entries from the transaction de-duplication cache."""
    try:
        engine.prune_seen()
    except Exception:
        logger.exception("Seen cache prune job failed")
