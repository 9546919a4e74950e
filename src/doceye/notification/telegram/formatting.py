"""Message formatting utilities for Telegram notifications.

Telegram is driven in HTML parse mode, so every interpolated value is
escaped. Values are capped before they are wrapped in tags so a finished
message never has to be cut: captions stay within 1024 characters and texts
within 4096.
"""

import html
import json
import traceback
from typing import Any, Optional

from ...scraper.documents import Document
from ...scraper.types import ErrorKind, MonitorError
from ...storage.types import UpdateReason

CAPTION_LIMIT = 1024
TEXT_LIMIT = 4096

# Per-value caps, counted after escaping
SITE_NAME_LIMIT = 100
TITLE_LIMIT = 400
DATE_LIMIT = 50
URL_LIMIT = 300
STEP_LIMIT = 500
DETAIL_LIMIT = 200
MESSAGE_LIMIT = 1500
STACK_EXCERPT_LIMIT = 500

UPDATE_REASON_TEXT = {
    UpdateReason.HASH_CHANGED: "(content changed)",
    UpdateReason.URL_CHANGED: "(new URL)",
}


def escape_html(text: Optional[str]) -> str:
    if not text:
        return ""
    return html.escape(text, quote=True)


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def escape_capped(text: Optional[str], limit: int) -> str:
    """Escape ``text`` so that the escaped result is at most ``limit`` characters."""
    text = truncate(text or "", limit)
    escaped = escape_html(text)
    while len(escaped) > limit:
        # Entities expand the text; drop at least as much as the overflow
        text = text[: max(len(text) - (len(escaped) - limit) - 1, 0)] + "…"
        escaped = escape_html(text)
    return escaped


class TelegramMessageFormatter:
    """Formats document and error notifications for Telegram delivery."""

    @staticmethod
    def format_new_document(
        site_name: str, document: Document, limit: int = CAPTION_LIMIT
    ) -> str:
        return TelegramMessageFormatter._document_message(
            "📄", "New", site_name, document, limit=limit
        )

    @staticmethod
    def format_updated_document(
        site_name: str,
        document: Document,
        reason: UpdateReason,
        limit: int = CAPTION_LIMIT,
    ) -> str:
        suffix = UPDATE_REASON_TEXT.get(UpdateReason(reason), "")
        return TelegramMessageFormatter._document_message(
            "🔄", "Updated", site_name, document, suffix, limit
        )

    @staticmethod
    def _document_message(
        emoji: str,
        label: str,
        site_name: str,
        document: Document,
        suffix: str = "",
        limit: int = CAPTION_LIMIT,
    ) -> str:
        title = escape_capped(document.title or "Untitled", TITLE_LIMIT)
        lines = [
            f"{emoji} <b>[{escape_capped(site_name, SITE_NAME_LIMIT)}]</b>",
            f"<b>{label}:</b> {title}" + (f" {suffix}" if suffix else ""),
        ]
        if document.date:
            lines.append(f"📅 {escape_capped(document.date, DATE_LIMIT)}")

        head = "\n".join(lines)
        room = limit - len(head) - 1
        link = f'🔗 <a href="{escape_html(document.url)}">View original</a>'
        if len(link) > room:
            # A cut href is useless; show as much of the address as fits instead
            link = f"🔗 {escape_capped(document.url, room - 2)}"
        return f"{head}\n{link}"

    @staticmethod
    def format_error(
        site_name: str, error: BaseException, context: Optional[dict[str, Any]] = None
    ) -> str:
        """Format a site failure, with detail lines chosen by error kind."""
        context = context or {}
        kind = error.kind if isinstance(error, MonitorError) else ErrorKind.UNEXPECTED
        details = error.context() if isinstance(error, MonitorError) else {}

        lines = [
            f"❌ <b>[{escape_capped(site_name, SITE_NAME_LIMIT)}] Error</b>",
            "",
            f"<b>URL:</b> {escape_capped(context.get('url') or 'N/A', URL_LIMIT)}",
            f"<b>Kind:</b> {kind.value}",
        ]

        step = context.get("step") or details.get("step")
        if kind in (ErrorKind.NAVIGATION, ErrorKind.CONFIGURATION) and step:
            step_json = json.dumps(step, ensure_ascii=False)
            lines.append(f"<b>Step:</b> {escape_capped(step_json, STEP_LIMIT)}")
            if details.get("step_index") is not None:
                lines.append(f"<b>Step index:</b> {details['step_index']}")
        elif kind == ErrorKind.EXTRACTION:
            if details.get("selector"):
                lines.append(f"<b>Selector:</b> {escape_capped(details['selector'], DETAIL_LIMIT)}")
            if details.get("field"):
                lines.append(f"<b>Field:</b> {escape_capped(details['field'], DETAIL_LIMIT)}")
        elif kind == ErrorKind.DOWNLOAD:
            lines.append(f"<b>File:</b> {escape_capped(details.get('url'), URL_LIMIT)}")
            lines.append(f"<b>Reason:</b> {escape_capped(details.get('reason'), DETAIL_LIMIT)}")

        message = getattr(error, "message", None) or str(error)
        lines.append(f"<b>Error:</b> <code>{escape_capped(message, MESSAGE_LIMIT)}</code>")

        consecutive = context.get("consecutive_count") or 1
        if consecutive > 1:
            lines.append(f"<b>Consecutive failures:</b> {consecutive}")

        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        if error.__traceback__ is not None and stack:
            lines.append("")
            lines.append(f"<pre>{escape_capped(stack, STACK_EXCERPT_LIMIT)}</pre>")

        return "\n".join(lines)

    @staticmethod
    def format_screenshot_caption(site_name: str) -> str:
        return f"Error screenshot for {escape_capped(site_name, SITE_NAME_LIMIT)}"
