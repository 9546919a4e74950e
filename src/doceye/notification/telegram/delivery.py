"""Telegram Bot API delivery with retry logic."""

from pathlib import Path
from typing import Any, Optional

import httpx

from ...config.settings import NotificationSettings
from ...scraper.documents import Document
from ...scraper.types import DownloadArtifact
from ...storage.types import UpdateReason
from ...utils.async_utils import retry_async
from ...utils.logging import get_structured_logger
from ..types import MessageResult, NotificationError
from .formatting import CAPTION_LIMIT, TEXT_LIMIT, TelegramMessageFormatter, truncate

logger = get_structured_logger(__name__)


class TelegramNotifier:
    """Sends document and error notifications to one Telegram chat.

    Without a bot token or chat id every send is a no-op that returns an
    unsuccessful ``MessageResult``. Each API call is attempted
    ``settings.max_retries`` times with a linear backoff; when every attempt
    fails a ``NotificationError`` is raised.
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        settings: Optional[NotificationSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bot_token = bot_token or ""
        self.chat_id = str(chat_id) if chat_id else ""
        self.settings = settings or NotificationSettings()
        self.formatter = TelegramMessageFormatter()
        self._transport = transport
        self.delivery_stats = {"sent": 0, "failed": 0, "skipped": 0}

    @property
    def is_configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    async def send_text(self, text: str) -> MessageResult:
        if not self.is_configured:
            return self._skipped("sendMessage")

        data = {"chat_id": self.chat_id, "disable_web_page_preview": "true"}
        data.update(self._fit_html("text", text, TEXT_LIMIT))
        return await self._call("sendMessage", data=data)

    async def send_document(
        self, content: bytes, filename: str, caption: Optional[str] = None
    ) -> MessageResult:
        if not self.is_configured:
            return self._skipped("sendDocument")

        return await self._call(
            "sendDocument",
            data=self._caption_fields(caption),
            files={"document": (filename, content)},
        )

    async def send_photo(self, content: bytes, caption: Optional[str] = None) -> MessageResult:
        if not self.is_configured:
            return self._skipped("sendPhoto")

        return await self._call(
            "sendPhoto",
            data=self._caption_fields(caption),
            files={"photo": ("screenshot.png", content, "image/png")},
        )

    async def notify_new_document(
        self,
        site_name: str,
        document: Document,
        artifact: Optional[DownloadArtifact] = None,
    ) -> MessageResult:
        """Announce a new document, attaching the file when one was downloaded."""
        message = self.formatter.format_new_document(site_name, document)
        return await self._send_with_optional_file(message, artifact)

    async def notify_updated_document(
        self,
        site_name: str,
        document: Document,
        artifact: Optional[DownloadArtifact] = None,
        reason: UpdateReason = UpdateReason.HASH_CHANGED,
    ) -> MessageResult:
        message = self.formatter.format_updated_document(site_name, document, reason)
        return await self._send_with_optional_file(message, artifact)

    async def notify_error(
        self,
        site_name: str,
        error: BaseException,
        context: Optional[dict[str, Any]] = None,
    ) -> list[MessageResult]:
        """Send the error text, followed by the screenshot when one exists."""
        context = context or {}
        results = [await self.send_text(self.formatter.format_error(site_name, error, context))]

        screenshot = context.get("screenshot")
        if screenshot:
            results.append(
                await self.send_photo(
                    screenshot, self.formatter.format_screenshot_caption(site_name)
                )
            )
        return results

    async def _send_with_optional_file(
        self, message: str, artifact: Optional[DownloadArtifact]
    ) -> MessageResult:
        if artifact is None:
            return await self.send_text(message)

        content = Path(artifact.path).read_bytes()
        return await self.send_document(content, artifact.filename, message)

    def _caption_fields(self, caption: Optional[str]) -> dict[str, str]:
        data = {"chat_id": self.chat_id}
        if caption:
            data.update(self._fit_html("caption", caption, CAPTION_LIMIT))
        return data

    @staticmethod
    def _fit_html(key: str, text: str, limit: int) -> dict[str, str]:
        """HTML fields for ``text``, or plain text when it would have to be cut."""
        if len(text) <= limit:
            return {key: text, "parse_mode": "HTML"}

        # Cutting HTML can leave a tag open, which Telegram rejects
        logger.warning("Message over limit, sending as plain text", length=len(text), limit=limit)
        return {key: truncate(text, limit)}

    def _skipped(self, method: str) -> MessageResult:
        self.delivery_stats["skipped"] += 1
        logger.info("Telegram not configured, skipping", method=method)
        return MessageResult(success=False, error_message="Telegram not configured")

    async def _call(
        self,
        method: str,
        data: dict[str, str],
        files: Optional[dict[str, Any]] = None,
    ) -> MessageResult:
        url = f"{self.settings.api_base}/bot{self.bot_token}/{method}"

        async def send_attempt() -> MessageResult:
            async with httpx.AsyncClient(
                timeout=self.settings.request_timeout, transport=self._transport
            ) as client:
                response = await client.post(url, data=data, files=files)

            try:
                payload = response.json()
            except ValueError as e:
                raise NotificationError(
                    f"Telegram API returned HTTP {response.status_code}", method
                ) from e

            if not payload.get("ok"):
                raise NotificationError(
                    f"Telegram API error: {payload.get('description', 'unknown error')}",
                    method,
                )

            message_id = (payload.get("result") or {}).get("message_id")
            return MessageResult(
                success=True,
                message_id=str(message_id) if message_id is not None else None,
                chat_id=self.chat_id,
            )

        try:
            result = await retry_async(
                send_attempt,
                max_retries=self.settings.max_retries - 1,
                delay=self.settings.retry_delay,
                exceptions=(httpx.HTTPError, NotificationError),
                linear=True,
            )
        except NotificationError:
            self.delivery_stats["failed"] += 1
            logger.error("Failed to send Telegram message after retries", method=method)
            raise
        except httpx.HTTPError as e:
            self.delivery_stats["failed"] += 1
            logger.error(
                "Failed to send Telegram message after retries",
                method=method,
                error=str(e),
            )
            raise NotificationError(f"Telegram request failed: {str(e)}", method) from e

        self.delivery_stats["sent"] += 1
        logger.debug("Telegram message sent", method=method, message_id=result.message_id)
        return result
