"""Chat command handling.

``CommandRouter`` maps /start, /stop, /status and /help onto the engine.
``CommandPoller`` long-polls the Bot API for updates and backs off through the
RateBudget when polling fails.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from walletwatch.core.constants import TELEGRAM_POLL_TIMEOUT_SECONDS
from walletwatch.core.exceptions import TelegramTransportError
from walletwatch.core.logging import get_logger
from walletwatch.notifications.dispatcher import NotificationDispatcher
from walletwatch.notifications.ratelimit import RateBudget
from walletwatch.notifications.telegram import HELP_TEXT, format_status
from walletwatch.tracker.engine import WatchEngine
from walletwatch.tracker.models import LifecycleResult

logger = get_logger(__name__)

START_REPLIES = {
    LifecycleResult.OK: "✅ Started tracking wallets",
    LifecycleResult.ALREADY: "Already tracking wallets",
    LifecycleResult.FAILED: "❌ Failed to start tracking, check the logs",
}

STOP_REPLIES = {
    LifecycleResult.OK: "🛑 Stopped tracking wallets",
    LifecycleResult.ALREADY: "Tracking is not running",
    LifecycleResult.FAILED: "❌ Failed to stop tracking, check the logs",
}


def parse_command(text: str) -> str | None:
    """``"/status@my_bot extra"`` -> ``"status"``. None if not a command."""
    if not text.startswith("/"):
        return None
    head = text.split(maxsplit=1)[0][1:]
    return head.split("@", 1)[0].lower() or None


class CommandRouter:
    """Maps chat commands to engine actions and replies via the dispatcher."""

    def __init__(self, engine: WatchEngine, dispatcher: NotificationDispatcher) -> None:
        self._engine = engine
        self._dispatcher = dispatcher
        self._handlers: dict[str, Callable[[], Awaitable[str]]] = {
            "start": self._start,
            "stop": self._stop,
            "status": self._status,
            "help": self._help,
        }

    @property
    def commands(self) -> list[str]:
        return list(self._handlers)

    async def handle_update(self, update: dict[str, Any]) -> str | None:
        """Run the command in ``update`` (if any) and reply in the same chat."""
        message = update.get("message") or update.get("channel_post") or {}
        text = message.get("text") or ""
        chat_id = (message.get("chat") or {}).get("id")
        command = parse_command(text)
        if command is None or chat_id is None:
            return None

        handler = self._handlers.get(command)
        if handler is None:
            logger.debug("Unknown command", command=command, chat_id=str(chat_id))
            return None

        logger.info("Command received", command=command, chat_id=str(chat_id))
        reply = await handler()
        await self._dispatcher.send(chat_id, reply)
        return reply

    async def _start(self) -> str:
        return START_REPLIES[await self._engine.start()]

    async def _stop(self) -> str:
        return STOP_REPLIES[await self._engine.stop()]

    async def _status(self) -> str:
        report = await self._engine.status_report()
        return format_status(report, self._engine.root_addresses)

    async def _help(self) -> str:
        return HELP_TEXT


class UpdateSource(Protocol):
    async def get_updates(self, offset: int | None = None, timeout: int = 30) -> list[dict[str, Any]]: ...


class CommandPoller:
    """getUpdates long-polling loop.

    Usage:
        poller = CommandPoller(bot, router, budget)
        await poller.start()
        ...
        await poller.stop()
    """

    def __init__(
        self,
        source: UpdateSource,
        router: CommandRouter,
        budget: RateBudget,
        *,
        poll_timeout: int = TELEGRAM_POLL_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self._router = router
        self._budget = budget
        self._poll_timeout = poll_timeout
        self._sleep = sleep
        self._offset: int | None = None
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def offset(self) -> int | None:
        return self._offset

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Command poller already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info("Command poller started")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.debug("Command poller stopped")

    async def _run(self) -> None:
        while self._running:
            await self.poll_once()

    async def poll_once(self) -> int:
        """Fetch and handle one batch of updates. Returns how many were handled."""
        try:
            updates = await self._source.get_updates(self._offset, timeout=self._poll_timeout)
        except TelegramTransportError as e:
            delay = self._budget.report_transport_error(e)
            logger.warning(
                "Polling error, backing off",
                error=e.message,
                delay=delay,
                consecutive_errors=self._budget.consecutive_errors,
            )
            await self._sleep(delay)
            return 0

        self._budget.report_transport_success()
        for update in updates:
            self._offset = int(update["update_id"]) + 1
            try:
                await self._router.handle_update(update)
            except Exception:
                logger.exception("Error handling command", update_id=update.get("update_id"))
        return len(updates)
