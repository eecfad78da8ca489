"""Tests for scheduler jobs (tracker/scheduler.py)."""

from unittest.mock import MagicMock

from walletwatch.tracker.scheduler import create_scheduler, prune_seen_job


class TestCreateScheduler:
    """Tests for create_scheduler."""

    def test_creates_scheduler(self) -> None:
        scheduler = create_scheduler()
        assert scheduler is not None
        assert str(scheduler.timezone) == "UTC"


class TestPruneSeenJob:
    """Tests for prune_seen_job."""

    async def test_prunes_engine_cache(self) -> None:
        engine = MagicMock()
        engine.prune_seen.return_value = 3

        await prune_seen_job(engine)

        engine.prune_seen.assert_called_once_with()

    async def test_swallows_errors(self) -> None:
        engine = MagicMock()
        engine.prune_seen.side_effect = RuntimeError("boom")

        # Job errors must not propagate into the scheduler
        await prune_seen_job(engine)

        engine.prune_seen.assert_called_once_with()
