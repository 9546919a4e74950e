"""Notification delivery for DocEye."""

from .telegram import TelegramMessageFormatter, TelegramNotifier
from .types import MessageResult, NotificationError

__all__ = [
    "MessageResult",
    "NotificationError",
    "TelegramMessageFormatter",
    "TelegramNotifier",
]
