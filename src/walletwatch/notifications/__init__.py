"""Notification services for walletwatch."""

from walletwatch.notifications.dispatcher import NotificationDispatcher
from walletwatch.notifications.ratelimit import RateBudget
from walletwatch.notifications.telegram import TelegramBot

__all__ = ["NotificationDispatcher", "RateBudget", "TelegramBot"]
