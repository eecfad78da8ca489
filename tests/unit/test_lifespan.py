"""Tests for watch_lifespan wiring and the maintenance job."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from walletwatch.config import Settings
from walletwatch.core.exceptions import ConfigurationError
from walletwatch.storage.state import EngineStateStore
from walletwatch.tracker.__main__ import watch_lifespan
from walletwatch.tracker.scheduler import prune_seen_job

ROOT_1 = "Root1111111111111111111111111111111111111111"
ROOT_2 = "Root2222222222222222222222222222222222222222"


async def _idle_updates(*args: Any, **kwargs: Any) -> list[dict[str, Any]]:
    await asyncio.sleep(10)
    return []


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        main_wallet_address_1=ROOT_1,
        main_wallet_address_2=ROOT_2,
        telegram_bot_token="123:abc",
        telegram_channel_id="-100200",
        state_file=tmp_path / "bot_state.json",
    )


@pytest.fixture
def ledger() -> AsyncMock:
    mock = AsyncMock()
    mock.get_token_balances.return_value = {}
    mock.get_balance.return_value = 1.0
    return mock


@pytest.fixture
def bot() -> AsyncMock:
    mock = AsyncMock()
    mock.get_updates.side_effect = _idle_updates
    return mock


class TestWatchLifespan:
    async def test_missing_config_fails_fast(self) -> None:
        with pytest.raises(ConfigurationError):
            async with watch_lifespan(Settings(_env_file=None)):
                pass

    async def test_starts_idle_and_announces(
        self, settings: Settings, ledger: AsyncMock, bot: AsyncMock
    ) -> None:
        with (
            patch("walletwatch.tracker.__main__.SolanaClient", return_value=ledger),
            patch("walletwatch.tracker.__main__.TelegramBot", return_value=bot),
        ):
            async with watch_lifespan(settings) as state:
                assert state.engine.is_tracking is False
                assert state.poller.is_running
                assert state.scheduler is not None
                assert state.scheduler.get_job("prune_seen") is not None
                bot.set_my_commands.assert_awaited_once()
                bot.send_message.assert_awaited_once()
                assert bot.send_message.await_args.args[0] == "-100200"

        ledger.start.assert_awaited_once()
        ledger.stop.assert_awaited_once()
        bot.close.assert_awaited_once()

    async def test_resumes_saved_tracking(
        self, settings: Settings, ledger: AsyncMock, bot: AsyncMock
    ) -> None:
        EngineStateStore(settings.state_file).save(True)

        with (
            patch("walletwatch.tracker.__main__.SolanaClient", return_value=ledger),
            patch("walletwatch.tracker.__main__.TelegramBot", return_value=bot),
        ):
            async with watch_lifespan(settings) as state:
                assert state.engine.is_tracking is True
                assert ledger.subscribe_activity.await_count == 2
                assert ledger.subscribe_token_balances.await_count == 2

        # Shutdown keeps the saved flag so the next run resumes again
        assert EngineStateStore(settings.state_file).load().is_tracking is True


class TestPruneSeenJob:
    async def test_prunes_engine_cache(self) -> None:
        engine = MagicMock()
        await prune_seen_job(engine)
        engine.prune_seen.assert_called_once()

    async def test_errors_are_logged_not_raised(self) -> None:
        engine = MagicMock()
        engine.prune_seen.side_effect = RuntimeError("boom")
        await prune_seen_job(engine)
