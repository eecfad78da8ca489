"""Telegram Bot API client and message formatting.

``TelegramBot`` wraps the handful of Bot API methods the tracker needs
(sendMessage, getUpdates, setMyCommands) and translates failures into the
walletwatch exception hierarchy so callers can tell throttling apart from
everything else.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx

from walletwatch.core.constants import (
    BIRDEYE_TOKEN_URL,
    DEXTOOLS_TOKEN_URL,
    POLLING_DEFAULT_RETRY_AFTER_SECONDS,
    SOLSCAN_ACCOUNT_URL,
    SOLSCAN_TX_URL,
    TELEGRAM_MAX_MESSAGE_LENGTH,
)
from walletwatch.core.exceptions import TelegramTransportError, ThrottleError
from walletwatch.core.logging import get_logger

if TYPE_CHECKING:
    from walletwatch.ledger.models import TokenInfo
    from walletwatch.tracker.models import StatusReport

logger = get_logger(__name__)

# Telegram API timeout
TELEGRAM_TIMEOUT = 10.0

TELEGRAM_API_URL = "https://api.telegram.org"

SECTION_SEPARATOR = "━━━━━━━━━━"

BOT_COMMANDS: list[dict[str, str]] = [
    {"command": "start", "description": "Start tracking wallets"},
    {"command": "stop", "description": "Stop tracking wallets"},
    {"command": "status", "description": "Show tracking status"},
    {"command": "help", "description": "Show available commands"},
]

HELP_TEXT = (
    "Available commands:\n"
    "/start - Start tracking\n"
    "/stop - Stop tracking\n"
    "/status - Show status\n"
    "/help - Show this help message"
)


class TelegramBot:
    """Minimal async Bot API client."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = TELEGRAM_API_URL,
        timeout: float = TELEGRAM_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._token = token
        self._base_url = base_url
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _call(
        self,
        method: str,
        payload: dict[str, Any],
        timeout: float | None = None,
    ) -> Any:
        client = self._get_client()
        url = f"/bot{self._token}/{method}"
        try:
            response = await client.post(
                url, json=payload, timeout=timeout if timeout is not None else self._timeout
            )
        except httpx.HTTPError as e:
            raise TelegramTransportError(f"Telegram {method} request failed: {e}") from e

        try:
            result = response.json()
        except (json.JSONDecodeError, ValueError):
            result = {}

        if response.status_code == 429:
            params = result.get("parameters") or {}
            retry_after = float(params.get("retry_after", POLLING_DEFAULT_RETRY_AFTER_SECONDS))
            raise ThrottleError(
                f"Telegram {method} throttled: {result.get('description', 'Too Many Requests')}",
                retry_after=retry_after,
            )

        if response.status_code >= 400 or not result.get("ok"):
            raise TelegramTransportError(
                f"Telegram {method} failed ({response.status_code}): "
                f"{result.get('description', response.text[:200])}"
            )

        return result.get("result")

    async def send_message(
        self,
        chat_id: str | int,
        text: str,
        *,
        rich_formatting: bool = True,
    ) -> dict[str, Any]:
        """Send ``text`` to ``chat_id``. HTML parse mode when ``rich_formatting``."""
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if rich_formatting:
            payload["parse_mode"] = "HTML"
        result: dict[str, Any] = await self._call("sendMessage", payload)
        logger.debug("Telegram message sent", chat_id=str(chat_id))
        return result

    async def get_updates(self, offset: int | None = None, timeout: int = 30) -> list[dict[str, Any]]:
        """Long-poll for new updates."""
        payload: dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message", "channel_post"]}
        if offset is not None:
            payload["offset"] = offset
        updates: list[dict[str, Any]] = await self._call(
            "getUpdates", payload, timeout=timeout + self._timeout
        )
        return updates or []

    async def set_my_commands(self, commands: list[dict[str, str]] | None = None) -> None:
        await self._call("setMyCommands", {"commands": commands or BOT_COMMANDS})
        logger.info("Bot commands registered")


def _escape_html(text: str) -> str:
    """Escape HTML special characters for Telegram."""
    return (
        text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")
    )


def split_message(message: str, max_length: int = TELEGRAM_MAX_MESSAGE_LENGTH) -> list[str]:
    """Split a long message into chunks, preferring section and paragraph breaks.

    Multi-part messages get "⋯ i/n" part indicators.
    """
    if len(message) <= max_length:
        return [message]

    # Reserve space for part indicators
    effective_max = max_length - 40

    chunks: list[str] = []
    remaining = message

    while remaining:
        if len(remaining) <= effective_max:
            chunks.append(remaining)
            break

        search_area = remaining[:effective_max]
        split_pos = search_area.rfind(SECTION_SEPARATOR)
        if split_pos <= 0:
            last_double_nl = search_area.rfind("\n\n")
            last_newline = search_area.rfind("\n")
            split_pos = last_double_nl if last_double_nl > effective_max // 2 else last_newline

        if split_pos > effective_max // 2:
            chunk = remaining[:split_pos].rstrip()
            remaining = remaining[split_pos:].lstrip("\n")
        else:
            # Last resort: hard split
            chunk = remaining[:effective_max].rstrip()
            remaining = remaining[effective_max:].lstrip("\n")

        chunks.append(chunk)

    if len(chunks) > 1:
        total = len(chunks)
        for i in range(total):
            if i < total - 1:
                chunks[i] += f"\n\n<i>⋯ {i + 1}/{total}</i>"
            if i > 0:
                chunks[i] = f"<i>⋯ {i + 1}/{total}</i>\n\n" + chunks[i]

    return chunks


def format_compact_number(value: float) -> str:
    """1234567 -> "1.23M"."""
    if value != value or value in (float("inf"), float("-inf")) or value == 0:
        return "0"
    suffixes = ["", "K", "M", "B", "T"]
    magnitude = 0
    scaled = float(value)
    while abs(scaled) >= 1000 and magnitude < len(suffixes) - 1:
        scaled /= 1000
        magnitude += 1
    return f"{scaled:.2f}{suffixes[magnitude]}"


def short_address(address: str) -> str:
    return f"{address[:4]}...{address[-4:]}"


def account_link(address: str) -> str:
    url = SOLSCAN_ACCOUNT_URL.format(address=address)
    return f'<a href="{url}">{short_address(address)}</a>'


def txn_link(signature: str) -> str:
    return f'<a href="{SOLSCAN_TX_URL.format(signature=signature)}">TX</a>'


def birdeye_link(token_id: str) -> str:
    return f'<a href="{BIRDEYE_TOKEN_URL.format(token_id=token_id)}">Birdeye</a>'


def dextools_link(token_id: str) -> str:
    return f'<a href="{DEXTOOLS_TOKEN_URL.format(token_id=token_id)}">DEXTools</a>'


def format_token_alert(
    info: TokenInfo,
    wallet_id: int,
    source_address: str,
    signature: str,
) -> str:
    """Alert sent when both root wallets' address spaces touched the same token."""
    return (
        "🚨 <b>New Token Alert</b> 🚨\n\n"
        f"Symbol: <b>{_escape_html(info.symbol)}</b>\n"
        f"Name: {_escape_html(info.name)}\n"
        f"Market Cap: ${format_compact_number(info.market_cap)}\n"
        f"Contract: <code>{info.token_id}</code>\n"
        f"Wallet: {account_link(source_address)} (via wallet {wallet_id})\n\n"
        f"{birdeye_link(info.token_id)} | {dextools_link(info.token_id)} | {txn_link(signature)}"
    )


def format_batch_update(
    wallet_id: int,
    wallet_address: str,
    new_tokens: list[str],
    balance_changes: list[str],
    signature: str | None = None,
) -> str | None:
    """Combine one window's balance updates into a message. None when nothing changed."""
    parts: list[str] = []
    if new_tokens:
        parts.append("<b>New tokens received:</b>\n" + "\n".join(new_tokens))
    if balance_changes:
        parts.append("<b>Balance changes:</b>\n" + "\n".join(balance_changes))
    if not parts:
        return None

    msg = f"📊 Updates for wallet {wallet_id} ({account_link(wallet_address)}):\n\n"
    msg += "\n\n".join(parts)
    if signature:
        msg += f"\n\n{txn_link(signature)}"
    return msg


def format_new_token_line(display_name: str, balance: float) -> str:
    return f"{_escape_html(display_name)} ({balance:.4f})"


def format_balance_change_line(display_name: str, previous: float, current: float) -> str:
    return f"{_escape_html(display_name)} ({previous:.4f} → {current:.4f})"


def format_status(report: StatusReport, root_addresses: dict[int, str]) -> str:
    state = "🟢 Active" if report.is_tracking else "🔴 Stopped"
    msg = f"🔍 <b>Tracking Status</b>\nState: {state}"

    for wallet_id, address in sorted(root_addresses.items()):
        balance = report.sol_balances.get(wallet_id)
        balance_str = f"{balance:.4f} SOL" if balance is not None else "n/a"
        discovered = report.discovered.get(wallet_id, 0)
        msg += (
            f"\n\nWallet {wallet_id} ({account_link(address)})"
            f"\nBalance: {balance_str}"
            f"\nDiscovered wallets: {discovered}"
        )

    if report.correlation:
        msg += (
            f"\n\n{SECTION_SEPARATOR}\n"
            f"Tokens observed: {report.correlation.get('observed', 0)} | "
            f"confirmed: {report.correlation.get('confirmed', 0)} | "
            f"ignored: {report.correlation.get('ignored', 0)}"
        )
    return msg


def format_bot_started(chat_id: str) -> str:
    started = datetime.now(UTC).strftime("%Y-%m-%d %H:%M UTC")
    return f"🟢 Wallet tracker bot started ({started})\nChat ID: {chat_id}\n\n{HELP_TEXT}"
