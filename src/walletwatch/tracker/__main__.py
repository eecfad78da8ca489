"""Tracker lifecycle module used by the FastAPI server and the headless runner.

Provides `watch_lifespan()`, an async context manager that wires the Solana
client, token resolver, Telegram bot, rate budget, dispatcher, engine and
command poller, and tears them all down on exit.

Usage:
    uv run -m walletwatch.tracker

Configuration (set in .env):
    - MAIN_WALLET_ADDRESS_1, MAIN_WALLET_ADDRESS_2: root wallets
    - TELEGRAM_BOT_TOKEN, TELEGRAM_CHANNEL_ID: alerts and commands
    - SOLANA_RPC_URL (and optionally SOLANA_WS_URL, SOLANA_RPC_API_KEY)
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from walletwatch.config import Settings, get_settings
from walletwatch.core.cache import SeenCache
from walletwatch.core.exceptions import TelegramTransportError
from walletwatch.core.logging import get_logger, setup_logging
from walletwatch.ledger.solana import SolanaClient
from walletwatch.ledger.tokens import TokenInfoResolver
from walletwatch.notifications.dispatcher import NotificationDispatcher
from walletwatch.notifications.ratelimit import RateBudget
from walletwatch.notifications.telegram import TelegramBot, format_bot_started
from walletwatch.storage.state import EngineStateStore
from walletwatch.tracker.commands import CommandPoller, CommandRouter
from walletwatch.tracker.engine import WatchEngine
from walletwatch.tracker.models import LifecycleResult
from walletwatch.tracker.scheduler import create_scheduler, prune_seen_job

logger = get_logger(__name__)


@dataclass
class TrackerState:
    """Holds references to all running tracker resources."""

    settings: Settings
    engine: WatchEngine
    ledger: SolanaClient
    bot: TelegramBot
    dispatcher: NotificationDispatcher
    poller: CommandPoller
    scheduler: AsyncIOScheduler | None = None


@asynccontextmanager
async def watch_lifespan(settings: Settings) -> AsyncIterator[TrackerState]:
    """Async context manager that starts/stops the wallet tracker.

    Raises ConfigurationError before anything is started when required
    settings are missing.
    """
    settings.require_tracking_config()
    assert settings.telegram_bot_token is not None
    assert settings.telegram_channel_id is not None
    channel_id = settings.telegram_channel_id

    api_key = settings.solana_rpc_api_key.get_secret_value() if settings.solana_rpc_api_key else None
    ledger = SolanaClient(settings.solana_rpc_url, settings.solana_ws_endpoint, api_key)
    token_info = TokenInfoResolver(
        ledger.get_token_supply,
        token_api_url=settings.jupiter_token_api_url,
        price_api_url=settings.jupiter_price_api_url,
    )
    bot = TelegramBot(settings.telegram_bot_token.get_secret_value())
    budget = RateBudget()
    dispatcher = NotificationDispatcher(bot, budget)
    state_store = EngineStateStore(settings.state_file)

    engine = WatchEngine(
        ledger,
        token_info,
        dispatcher,
        root_addresses=settings.root_wallets,
        channel_id=channel_id,
        capacity=settings.tracked_wallets_size,
        update_delay=settings.update_delay_seconds,
        max_balance_change=settings.max_balance_change,
        subscribe_derived=settings.subscribe_derived_wallets,
        seen_cache=SeenCache(ttl_seconds=settings.seen_cache_ttl_seconds),
        state_store=state_store,
    )
    router = CommandRouter(engine, dispatcher)
    poller = CommandPoller(bot, router, budget)
    scheduler: AsyncIOScheduler | None = None

    try:
        logger.debug("Connecting to Solana", rpc_url=settings.solana_rpc_url)
        await ledger.start()

        try:
            await bot.set_my_commands()
        except TelegramTransportError as e:
            logger.warning("Could not register bot commands", error=e.message)

        scheduler = create_scheduler()
        scheduler.add_job(
            prune_seen_job,
            IntervalTrigger(seconds=settings.seen_cache_ttl_seconds),
            args=[engine],
            id="prune_seen",
            max_instances=1,
        )
        scheduler.start()

        await poller.start()

        saved = state_store.load()
        if saved.is_tracking:
            logger.info("Resuming tracking from saved state", last_updated=saved.last_updated.isoformat())
            result = await engine.start()
            if result is LifecycleResult.FAILED:
                logger.error("Could not resume tracking")

        await dispatcher.send(channel_id, format_bot_started(channel_id))

        logger.info(
            "Tracker ready",
            tracking=engine.is_tracking,
            wallet_1=settings.main_wallet_address_1,
            wallet_2=settings.main_wallet_address_2,
        )

        yield TrackerState(
            settings=settings,
            engine=engine,
            ledger=ledger,
            bot=bot,
            dispatcher=dispatcher,
            poller=poller,
            scheduler=scheduler,
        )

    finally:
        logger.info("Shutting down tracker...")

        if scheduler and scheduler.running:
            scheduler.shutdown(wait=False)
            logger.debug("Scheduler stopped")

        await poller.stop()
        await engine.close()
        await ledger.stop()
        await token_info.close()
        await bot.close()

        logger.info("Tracker shutdown complete")


async def run(settings: Settings | None = None) -> None:
    """Run the tracker until SIGINT/SIGTERM."""
    settings = settings or get_settings()
    setup_logging(settings)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    async with watch_lifespan(settings):
        await shutdown_event.wait()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
