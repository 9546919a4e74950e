"""Type definitions for the notification module."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from ..scraper.types import ErrorKind, MonitorError


class NotificationError(MonitorError):
    """A Telegram API call failed after all of its attempts."""

    kind = ErrorKind.NOTIFICATION

    def __init__(self, message: str, method: Optional[str] = None):
        super().__init__(message)
        self.method = method

    def context(self) -> dict[str, Any]:
        return {"method": self.method}


@dataclass
class MessageResult:
    """Result of sending a message."""

    success: bool
    message_id: Optional[str] = None
    chat_id: Optional[str] = None
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None

    def __post_init__(self):
        if self.sent_at is None:
            self.sent_at = datetime.now(timezone.utc)
