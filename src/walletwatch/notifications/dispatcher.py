"""Notification dispatcher: rate-limited, throttle-aware delivery."""

from __future__ import annotations

from typing import Any, Protocol

from walletwatch.core.constants import TELEGRAM_MAX_SEND_ATTEMPTS
from walletwatch.core.exceptions import TelegramTransportError, ThrottleError
from walletwatch.core.logging import get_logger
from walletwatch.notifications.ratelimit import RateBudget
from walletwatch.notifications.telegram import split_message

logger = get_logger(__name__)


class MessageTransport(Protocol):
    """Anything that can deliver a text message to a chat."""

    async def send_message(
        self,
        chat_id: str | int,
        text: str,
        *,
        rich_formatting: bool = True,
    ) -> Any: ...


class NotificationDispatcher:
    """Sends messages through a RateBudget, retrying on provider throttling.

    Non-throttle failures are logged and the message is dropped; they are
    never reported back into the chat to avoid notification loops.
    """

    def __init__(
        self,
        transport: MessageTransport,
        budget: RateBudget,
        *,
        max_attempts: int = TELEGRAM_MAX_SEND_ATTEMPTS,
    ) -> None:
        self._transport = transport
        self._budget = budget
        self._max_attempts = max_attempts
        self.sent_count = 0
        self.dropped_count = 0

    @staticmethod
    def is_group_recipient(recipient: str | int) -> bool:
        return str(recipient).startswith("-")

    async def send(
        self,
        recipient: str | int,
        message: str,
        *,
        is_group: bool | None = None,
        rich_formatting: bool = True,
    ) -> bool:
        """Deliver ``message``, splitting it if it exceeds Telegram's length limit.

        Returns:
            True if every chunk was delivered, False otherwise
        """
        if is_group is None:
            is_group = self.is_group_recipient(recipient)

        chunks = split_message(message)
        all_sent = True
        for i, chunk in enumerate(chunks):
            if not await self._send_one(recipient, chunk, is_group, rich_formatting):
                if len(chunks) > 1:
                    logger.warning(
                        "Failed to send message chunk",
                        chunk_index=i,
                        total_chunks=len(chunks),
                    )
                all_sent = False
        return all_sent

    async def _send_one(
        self,
        recipient: str | int,
        text: str,
        is_group: bool,
        rich_formatting: bool,
    ) -> bool:
        for attempt in range(1, self._max_attempts + 1):
            await self._budget.acquire(recipient, is_group)
            try:
                await self._transport.send_message(recipient, text, rich_formatting=rich_formatting)
            except ThrottleError as e:
                self._budget.report_throttled(recipient, e.retry_after)
                logger.warning(
                    "Send throttled, will retry",
                    recipient=str(recipient),
                    attempt=attempt,
                    retry_after=e.retry_after,
                )
                continue
            except TelegramTransportError as e:
                logger.error("Failed to send Telegram message", recipient=str(recipient), error=e.message)
                self.dropped_count += 1
                return False

            self.sent_count += 1
            return True

        logger.error(
            "Giving up on message after repeated throttling",
            recipient=str(recipient),
            attempts=self._max_attempts,
        )
        self.dropped_count += 1
        return False
