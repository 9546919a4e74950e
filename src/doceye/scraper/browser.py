"""Playwright browser lifecycle and isolated per-site sessions."""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright

from ..config import ScrapingSettings, get_settings
from ..utils.async_utils import AsyncContextManager
from ..utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

# Hide the most obvious automation marker; some portals refuse headless browsers
INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
"""


class MonitorBrowser(AsyncContextManager):
    """One Chromium instance shared by all sites of a run.

    Each site gets its own browser context (cookies, storage and downloads
    are never shared between sites) through ``open_session``.
    """

    def __init__(self, settings: Optional[ScrapingSettings] = None):
        self.settings = settings or get_settings().scraping
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self._browser_lock = asyncio.Lock()

    async def setup(self) -> None:
        """Start Playwright and launch Chromium."""
        if self.browser:
            return

        async with self._browser_lock:
            if self.browser:
                return

            logger.info("Launching browser", headless=self.settings.headless)
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                headless=self.settings.headless,
                args=[
                    "--no-sandbox",
                    "--disable-dev-shm-usage",
                    "--disable-blink-features=AutomationControlled",
                ],
            )

    async def cleanup(self) -> None:
        """Close the browser and stop Playwright."""
        async with self._browser_lock:
            if self.browser:
                await self.browser.close()
                self.browser = None

            if self.playwright:
                await self.playwright.stop()
                self.playwright = None

            logger.info("Browser closed")

    @asynccontextmanager
    async def open_session(self, timeout: Optional[int] = None):
        """Yield a fresh page inside an isolated context; both close on exit."""
        if not self.browser:
            await self.setup()

        timeout = timeout or self.settings.default_timeout
        context = await self.browser.new_context(
            user_agent=self.settings.user_agent,
            viewport={
                "width": self.settings.viewport_width,
                "height": self.settings.viewport_height,
            },
            accept_downloads=True,
        )
        await context.add_init_script(INIT_SCRIPT)

        try:
            page: Page = await context.new_page()
            page.set_default_timeout(timeout)
            page.set_default_navigation_timeout(timeout)
            yield page
        finally:
            try:
                await context.close()
            except Exception as e:
                logger.warning("Failed to close browser context", error=str(e))
