"""Shared fakes for Playwright pages, elements and browsers."""

from contextlib import asynccontextmanager
from typing import Any, Optional
from unittest.mock import AsyncMock

PDF_BYTES = b"%PDF-1.7\n1 0 obj\n<< /Type /Catalog >>\nendobj\n"
HTML_BYTES = b"<!DOCTYPE html><html><body>Session expired</body></html>"


class FakeElement:
    """Minimal stand-in for a Playwright ElementHandle."""

    def __init__(
        self,
        text: Optional[str] = None,
        attributes: Optional[dict[str, str]] = None,
        properties: Optional[dict[str, Any]] = None,
        children: Optional[dict[str, "FakeElement"]] = None,
        fail_on: Optional[str] = None,
    ):
        self.text = text
        self.attributes = attributes or {}
        self.properties = properties or {}
        self.children = children or {}
        self.fail_on = fail_on

    async def query_selector(self, selector: str):
        if selector == self.fail_on:
            raise RuntimeError("Element is detached from the DOM")
        return self.children.get(selector)

    async def get_attribute(self, name: str):
        return self.attributes.get(name)

    async def text_content(self):
        return self.text

    async def evaluate(self, script: str, arg: Any = None):
        return self.properties.get(arg)


def make_page(url: str = "https://example.gob.es/list", items=None) -> AsyncMock:
    page = AsyncMock()
    page.url = url
    page.evaluate.return_value = url
    page.query_selector_all.return_value = items or []
    page.screenshot.return_value = b"\x89PNG screenshot"
    page.content.return_value = "<html></html>"
    return page


class FakeBrowser:
    """Hands out one prepared page per session."""

    def __init__(self, page):
        self.page = page
        self.sessions = 0
        self.closed = 0

    @asynccontextmanager
    async def open_session(self, timeout: Optional[int] = None):
        self.sessions += 1
        try:
            yield self.page
        finally:
            self.closed += 1

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None


def doc_item(title: str, href: str, date: Optional[str] = None) -> FakeElement:
    """A list item with a link carrying the title and href."""
    children = {"a": FakeElement(text=title, attributes={"href": href})}
    if date:
        children["span.date"] = FakeElement(text=date)
    return FakeElement(children=children)
