"""Send budgets for the Telegram Bot API.

Telegram enforces roughly 30 messages per second overall, one message per
second to a private chat and 20 messages per minute to a group or channel.
``RateBudget.acquire`` suspends the caller until every window that applies has
room, and absorbs 429 responses by blocking the offending chat until its
retry-after deadline.

It also keeps the exponential backoff for the inbound update-polling loop,
which is unrelated to outbound pacing but reacts to the same API.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from walletwatch.core.constants import (
    POLLING_BASE_INTERVAL_SECONDS,
    POLLING_DEFAULT_RETRY_AFTER_SECONDS,
    POLLING_MAX_BACKOFF_ATTEMPTS,
    POLLING_MAX_INTERVAL_SECONDS,
    TELEGRAM_CHAT_LIMIT,
    TELEGRAM_CHAT_MIN_SPACING_SECONDS,
    TELEGRAM_GLOBAL_LIMIT,
    TELEGRAM_GROUP_LIMIT,
    TELEGRAM_GROUP_MIN_SPACING_SECONDS,
    TELEGRAM_GROUP_RESET_INTERVAL_SECONDS,
    TELEGRAM_MIN_WAIT_SECONDS,
    TELEGRAM_RESET_INTERVAL_SECONDS,
)
from walletwatch.core.exceptions import ThrottleError
from walletwatch.core.logging import get_logger

logger = get_logger(__name__)

_RETRY_AFTER_RE = re.compile(r"retry after (\d+)", re.IGNORECASE)


@dataclass
class RateLimitState:
    """Counters for one send window."""

    window_start: float
    send_count: int = 0
    last_send_time: float | None = None
    retry_after: float | None = None

    def roll(self, now: float, interval: float) -> None:
        if now - self.window_start >= interval:
            self.send_count = 0
            self.window_start = now


@dataclass(frozen=True)
class WindowPolicy:
    limit: int
    interval: float
    min_spacing: float


class RateBudget:
    """Per-recipient and global send windows plus ingress polling backoff."""

    def __init__(
        self,
        *,
        global_limit: int = TELEGRAM_GLOBAL_LIMIT,
        global_interval: float = TELEGRAM_RESET_INTERVAL_SECONDS,
        chat_policy: WindowPolicy | None = None,
        group_policy: WindowPolicy | None = None,
        min_wait: float = TELEGRAM_MIN_WAIT_SECONDS,
        polling_base: float = POLLING_BASE_INTERVAL_SECONDS,
        polling_cap: float = POLLING_MAX_INTERVAL_SECONDS,
        max_backoff_attempts: int = POLLING_MAX_BACKOFF_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._global_limit = global_limit
        self._global_interval = global_interval
        self._chat_policy = chat_policy or WindowPolicy(
            TELEGRAM_CHAT_LIMIT, TELEGRAM_RESET_INTERVAL_SECONDS, TELEGRAM_CHAT_MIN_SPACING_SECONDS
        )
        self._group_policy = group_policy or WindowPolicy(
            TELEGRAM_GROUP_LIMIT,
            TELEGRAM_GROUP_RESET_INTERVAL_SECONDS,
            TELEGRAM_GROUP_MIN_SPACING_SECONDS,
        )
        self._min_wait = min_wait
        self._polling_base = polling_base
        self._polling_cap = polling_cap
        self._max_backoff_attempts = max_backoff_attempts
        self._clock = clock
        self._sleep = sleep

        self._global = RateLimitState(window_start=clock())
        self._recipients: dict[str, RateLimitState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._consecutive_errors = 0

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    def _policy(self, is_group: bool) -> WindowPolicy:
        return self._group_policy if is_group else self._chat_policy

    def _state(self, recipient: str) -> RateLimitState:
        state = self._recipients.get(recipient)
        if state is None:
            state = RateLimitState(window_start=self._clock())
            self._recipients[recipient] = state
        return state

    def _wait_time(self, state: RateLimitState, policy: WindowPolicy, now: float) -> float:
        """Longest remaining time among the global window, chat window and spacing."""
        waits = [0.0]
        if self._global.send_count >= self._global_limit:
            waits.append(self._global.window_start + self._global_interval - now)
        if state.send_count >= policy.limit:
            waits.append(state.window_start + policy.interval - now)
        if state.last_send_time is not None:
            waits.append(state.last_send_time + policy.min_spacing - now)
        return max(waits)

    async def acquire(self, recipient: str | int, is_group: bool = False) -> None:
        """Suspend until a message to ``recipient`` may be sent, then consume one slot."""
        key = str(recipient)
        lock = self._locks.setdefault(key, asyncio.Lock())

        # asyncio.Lock wakes waiters in FIFO order, which makes it a per-chat queue
        async with lock:
            state = self._state(key)
            policy = self._policy(is_group)

            if state.retry_after is not None:
                remaining = state.retry_after - self._clock()
                if remaining > 0:
                    logger.debug("Waiting out Telegram retry-after", recipient=key, wait=remaining)
                    await self._sleep(remaining)
                state.retry_after = None
                state.send_count = 0
                state.window_start = self._clock()

            while True:
                now = self._clock()
                self._global.roll(now, self._global_interval)
                state.roll(now, policy.interval)
                wait = self._wait_time(state, policy, now)
                if wait <= 0:
                    break
                await self._sleep(max(wait, self._min_wait))

            now = self._clock()
            self._global.send_count += 1
            state.send_count += 1
            state.last_send_time = now

    def should_wait(self, recipient: str | int, is_group: bool = False) -> bool:
        """True if an immediate send to ``recipient`` would have to wait."""
        return self.get_wait_time(recipient, is_group) > 0

    def get_wait_time(self, recipient: str | int, is_group: bool = False) -> float:
        """Estimated seconds until ``recipient`` may be sent to."""
        state = self._recipients.get(str(recipient))
        if state is None:
            return 0.0
        now = self._clock()
        wait = self._wait_time(state, self._policy(is_group), now)
        if state.retry_after is not None:
            wait = max(wait, state.retry_after - now)
        return max(0.0, wait)

    def report_throttled(self, recipient: str | int, retry_after_seconds: float) -> None:
        """Telegram answered 429: block ``recipient`` until the deadline."""
        state = self._state(str(recipient))
        state.retry_after = self._clock() + retry_after_seconds
        state.send_count = max(self._chat_policy.limit, self._group_policy.limit)
        logger.warning(
            "Telegram throttled sends",
            recipient=str(recipient),
            retry_after=retry_after_seconds,
        )

    def polling_interval(self) -> float:
        return min(
            self._polling_base * (2**self._consecutive_errors),
            self._polling_cap,
        )

    def report_transport_error(self, error: BaseException | None = None) -> float:
        """Record an ingress polling failure and return the backoff in seconds."""
        self._consecutive_errors = min(self._consecutive_errors + 1, self._max_backoff_attempts)

        if isinstance(error, ThrottleError):
            return error.retry_after
        if error is not None and "429" in str(error):
            match = _RETRY_AFTER_RE.search(str(error))
            return float(match.group(1)) if match else POLLING_DEFAULT_RETRY_AFTER_SECONDS

        return self.polling_interval()

    def report_transport_success(self) -> None:
        self._consecutive_errors = 0
