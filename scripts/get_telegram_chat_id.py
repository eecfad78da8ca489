#!/usr/bin/env python3
"""Find the chat ID to use as TELEGRAM_CHANNEL_ID.

Usage:
    1. Add the bot to your channel as an admin and post any message there
       (or send the bot a direct message)
    2. Run: uv run python scripts/get_telegram_chat_id.py
"""

import httpx

from walletwatch.config import get_settings


def main() -> None:
    settings = get_settings()

    if not settings.telegram_bot_token:
        print("Error: TELEGRAM_BOT_TOKEN not set")
        print("Set it in .env or export TELEGRAM_BOT_TOKEN=your_token")
        return

    token = settings.telegram_bot_token.get_secret_value()
    url = f"https://api.telegram.org/bot{token}/getUpdates"

    print("Fetching updates from bot...")
    response = httpx.get(url, timeout=15.0)
    data = response.json()

    if not data.get("ok"):
        print(f"Error: {data.get('description')}")
        return

    results = data.get("result", [])

    if not results:
        print("\nNo messages found!")
        print("Make sure you:")
        print("  1. Added the bot to the channel as an admin")
        print("  2. Posted a message in the channel (or messaged the bot)")
        print("  3. Stopped the tracker first, it consumes the same updates")
        return

    print("\nFound chats:")
    seen: set[int] = set()
    for update in results:
        msg = update.get("message") or update.get("channel_post") or {}
        chat = msg.get("chat", {})
        chat_id = chat.get("id")
        if not chat_id or chat_id in seen:
            continue
        seen.add(chat_id)
        name = chat.get("title") or chat.get("first_name") or chat.get("username") or "Unknown"
        print(f"  Chat ID: {chat_id}")
        print(f"    Type: {chat.get('type')}")
        print(f"    Name: {name}")
        print()

    channels = [
        (update.get("channel_post") or {}).get("chat", {}).get("id")
        for update in results
        if update.get("channel_post")
    ]
    if channels:
        print("Add this to your .env:")
        print(f"TELEGRAM_CHANNEL_ID={channels[-1]}")


if __name__ == "__main__":
    main()
