"""Telegram delivery of document and error notifications."""

from .delivery import TelegramNotifier
from .formatting import TelegramMessageFormatter, escape_html

__all__ = ["TelegramNotifier", "TelegramMessageFormatter", "escape_html"]
