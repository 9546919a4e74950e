"""Per-site pipeline sequencing and the multi-site run loop."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from playwright.async_api import Page

from ..config.settings import AppSettings
from ..config.types import ConfigError, InvalidSite, MonitorConfiguration, SiteConfig
from ..notification.telegram import TelegramNotifier
from ..scraper.browser import MonitorBrowser
from ..scraper.documents import Document
from ..scraper.downloader import DownloadValidator
from ..scraper.extractor import DeepLinkResolver, ListExtractor
from ..scraper.steps import StepExecutor
from ..scraper.types import DownloadArtifact, ErrorKind, MonitorError, NavigationError
from ..storage.differ import StateDiffer
from ..storage.store import StateStore, utc_now
from ..storage.types import SiteState, UpdatedDocument
from ..utils.async_utils import retry_async
from ..utils.logging import get_structured_logger, logging_context
from .dedup import ErrorDeduper
from .types import RunOptions, RunSummary, SiteResult

logger = get_structured_logger(__name__)

DOWNLOAD_RETRY_BASE_DELAY = 1.0  # seconds, doubled per attempt


def select_sites(
    configuration: MonitorConfiguration, site_id: Optional[str] = None
) -> tuple[list[SiteConfig], list[InvalidSite]]:
    """Pick the enabled sites to run, optionally narrowed to one id."""
    sites = [site for site in configuration.sites if site.enabled]
    invalid = [site for site in configuration.invalid_sites if site.enabled]

    if site_id:
        sites = [site for site in sites if site.id == site_id]
        invalid = [site for site in invalid if site.id == site_id]
        if not sites and not invalid:
            raise ConfigError(f"Site not found: {site_id}")

    return sites, invalid


class SiteOrchestrator:
    """Runs the full discovery pipeline for one site at a time.

    Document-level problems (a failed download, a failed notification) never
    stop a site. Anything that escapes navigation, step execution or
    extraction is a site failure: it is recorded through the ``ErrorDeduper``
    and reported once per distinct failure.
    """

    def __init__(
        self,
        browser: MonitorBrowser,
        state_site: Callable[[str], SiteState],
        notifier: TelegramNotifier,
        settings: AppSettings,
        options: Optional[RunOptions] = None,
        list_extractor: Optional[ListExtractor] = None,
        deep_link_resolver: Optional[DeepLinkResolver] = None,
        downloader_factory: Optional[Callable[[SiteConfig], DownloadValidator]] = None,
        differ: Optional[StateDiffer] = None,
        deduper: Optional[ErrorDeduper] = None,
        download_retry_delay: float = DOWNLOAD_RETRY_BASE_DELAY,
    ):
        self.browser = browser
        self.state_site = state_site
        self.notifier = notifier
        self.settings = settings
        self.options = options or RunOptions()
        self.list_extractor = list_extractor or ListExtractor()
        self.deep_link_resolver = deep_link_resolver or DeepLinkResolver()
        self.downloader_factory = downloader_factory or self._default_downloader
        self.differ = differ or StateDiffer()
        self.deduper = deduper or ErrorDeduper()
        self.download_retry_delay = download_retry_delay

    def _default_downloader(self, site: SiteConfig) -> DownloadValidator:
        return DownloadValidator(
            download_dir=self.settings.download_dir,
            timeout=site.download_timeout or self.settings.scraping.download_timeout,
            user_agent=self.settings.scraping.user_agent,
        )

    def _timeout_for(self, site: SiteConfig) -> int:
        return site.timeout or self.settings.scraping.default_timeout

    async def process_site(self, site: SiteConfig) -> SiteResult:
        site_state = self.state_site(site.id)

        with logging_context(site_id=site.id):
            logger.info("Processing site", name=site.name, url=site.url)
            try:
                async with self.browser.open_session(self._timeout_for(site)) as page:
                    try:
                        return await self._run_pipeline(site, site_state, page)
                    except Exception as e:
                        return await self._handle_failure(site, site_state, e, page)
            except Exception as e:
                return await self._handle_failure(site, site_state, e, None)

    async def _run_pipeline(
        self, site: SiteConfig, site_state: SiteState, page: Page
    ) -> SiteResult:
        timeout = self._timeout_for(site)

        try:
            await page.goto(site.url, wait_until="domcontentloaded", timeout=timeout)
        except Exception as e:
            raise NavigationError(f"Failed to load {site.url}: {str(e)}") from e

        if site.steps:
            logger.info("Executing navigation steps", total_steps=len(site.steps))
            await StepExecutor(default_timeout=timeout).run(page, site.steps)
        else:
            logger.debug("No navigation steps configured")

        documents = await self.list_extractor.extract(page, site.extraction)
        if not documents:
            await self._save_empty_page_screenshot(site, page)
            return SiteResult(site_id=site.id, name=site.name, success=True)

        if site.extraction.deep_search_enabled:
            documents = await self.deep_link_resolver.resolve(
                page, documents, site.extraction.deep_search
            )

        diff = self.differ.diff(site_state.documents, documents)
        logger.info(
            "Compared with previous state",
            new=len(diff.new),
            updated=len(diff.updated),
            unchanged=len(diff.unchanged),
        )
        if not diff.has_changes:
            logger.info("No new or updated documents")

        downloader = self.downloader_factory(site)
        processed = 0
        for document in diff.new:
            if await self._process_document(site, page, downloader, document):
                processed += 1
        for update in diff.updated:
            if await self._process_document(site, page, downloader, update.doc, update):
                processed += 1

        if not self.options.dry_run:
            self.differ.apply(site_state, diff, utc_now())
            self.deduper.clear(site_state)

        logger.info("Site processed", documents=len(documents), processed=processed)
        return SiteResult(
            site_id=site.id,
            name=site.name,
            success=True,
            documents=len(documents),
            new=len(diff.new),
            updated=len(diff.updated),
            processed=processed,
        )

    async def _process_document(
        self,
        site: SiteConfig,
        page: Page,
        downloader: DownloadValidator,
        document: Document,
        update: Optional[UpdatedDocument] = None,
    ) -> bool:
        """Download, validate and announce one document; True when the file was retrieved."""
        logger.info(
            "Updated document" if update else "New document",
            title=document.label,
            url=document.url,
            reason=update.reason.value if update else None,
        )

        artifact: Optional[DownloadArtifact] = None
        try:
            artifact = await retry_async(
                lambda: downloader.download(page, document.url),
                max_retries=site.retries,
                delay=self.download_retry_delay,
                backoff_factor=2.0,
            )
            document.hash = artifact.hash
        except Exception as e:
            logger.warning(
                "Download failed, reporting without attachment",
                url=document.url,
                reason=getattr(e, "reason", None),
                error=str(e),
            )

        try:
            if self.options.should_notify:
                if update is None:
                    await self._notify(
                        "new_document",
                        lambda: self.notifier.notify_new_document(site.name, document, artifact),
                    )
                else:
                    await self._notify(
                        "updated_document",
                        lambda: self.notifier.notify_updated_document(
                            site.name, document, artifact, update.reason
                        ),
                    )
        finally:
            downloader.release(artifact)

        return artifact is not None

    async def _handle_failure(
        self,
        site: SiteConfig,
        site_state: SiteState,
        error: Exception,
        page: Optional[Page],
    ) -> SiteResult:
        if isinstance(error, MonitorError):
            kind = error.kind
            step = error.context().get("step")
            message = error.message
        else:
            kind = ErrorKind.UNEXPECTED
            step = None
            message = str(error) or type(error).__name__

        screenshot = getattr(error, "screenshot", None)
        if screenshot is None and page is not None:
            try:
                screenshot = await page.screenshot(full_page=True)
            except Exception as e:
                logger.debug("Failed to capture error screenshot", error=str(e))

        decision = self.deduper.record(site_state, kind, message, step, utc_now())
        logger.error(
            "Site failed",
            kind=kind.value,
            error=message,
            step=step,
            consecutive_count=decision.record.consecutive_count,
        )

        if decision.is_duplicate:
            logger.info(
                "Repeated error, notification suppressed",
                consecutive_count=decision.record.consecutive_count,
            )
        elif self.options.should_notify:
            context = {
                "url": site.url,
                "step": step,
                "screenshot": screenshot,
                "consecutive_count": decision.record.consecutive_count,
            }
            await self._notify(
                "error", lambda: self.notifier.notify_error(site.name, error, context)
            )

        return SiteResult(
            site_id=site.id,
            name=site.name,
            success=False,
            error=message,
            duplicate_error=decision.is_duplicate,
        )

    async def _notify(self, action: str, send: Callable[[], Awaitable[Any]]) -> bool:
        """Deliver a notification; failures are logged and never propagate."""
        try:
            await send()
            return True
        except Exception as e:
            logger.error("Notification failed", action=action, error=str(e))
            return False

    async def _save_empty_page_screenshot(self, site: SiteConfig, page: Page) -> None:
        path = self.settings.download_dir / f"debug-{site.id}-{int(time.time() * 1000)}.png"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=True)
            logger.warning("No documents found, saved diagnostic screenshot", path=str(path))
        except Exception as e:
            logger.warning("No documents found, screenshot failed", error=str(e))


class MonitorRunner:
    """Loads state once, processes each selected site in turn, saves state once."""

    def __init__(
        self,
        settings: AppSettings,
        notifier: TelegramNotifier,
        options: Optional[RunOptions] = None,
        store: Optional[StateStore] = None,
        browser: Optional[MonitorBrowser] = None,
        orchestrator_factory: Optional[Callable[..., SiteOrchestrator]] = None,
    ):
        self.settings = settings
        self.notifier = notifier
        self.options = options or RunOptions()
        self.store = store or StateStore(settings.state_file)
        self.browser = browser or MonitorBrowser(settings.scraping)
        self.orchestrator_factory = orchestrator_factory or SiteOrchestrator

    async def run(
        self, sites: list[SiteConfig], invalid_sites: Optional[list[InvalidSite]] = None
    ) -> RunSummary:
        summary = RunSummary()

        for invalid in invalid_sites or []:
            logger.error("Skipping invalid site", site_id=invalid.id, error=invalid.error)
            summary.results.append(
                SiteResult(site_id=invalid.id, name=invalid.name, success=False, error=invalid.error)
            )

        state = self.store.load()

        if sites:
            async with self.browser:
                orchestrator = self.orchestrator_factory(
                    browser=self.browser,
                    state_site=state.site,
                    notifier=self.notifier,
                    settings=self.settings,
                    options=self.options,
                )
                for index, site in enumerate(sites):
                    if index:
                        await asyncio.sleep(self.settings.scraping.site_delay)
                    summary.results.append(await orchestrator.process_site(site))

        if not self.options.dry_run:
            self.store.save()

        DownloadValidator(self.settings.download_dir).sweep(
            self.settings.scraping.download_max_age
        )

        logger.info(
            "Run complete",
            successful=len(summary.successful),
            failed=len(summary.failed),
            total=len(summary.results),
        )
        return summary
