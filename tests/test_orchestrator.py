"""Tests for per-site orchestration and the run loop."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from doceye.config.types import InvalidSite, SiteConfig
from doceye.monitor import MonitorRunner, RunOptions, RunSummary, SiteOrchestrator, SiteResult
from doceye.notification import NotificationError
from doceye.scraper.documents import Document
from doceye.scraper.types import DownloadArtifact, DownloadError, ErrorKind
from doceye.storage import StateStore, UpdateReason
from doceye.storage.types import MonitorState

from helpers import FakeBrowser, doc_item, make_page


class FakeDownloader:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls: list[str] = []
        self.released: list[DownloadArtifact] = []

    async def download(self, page, url):
        self.calls.append(url)
        if url in self.failing:
            raise DownloadError("HTTP 500: Internal Server Error", url, "http_error")
        return DownloadArtifact(
            path=f"/nonexistent/{len(self.calls)}.pdf",
            hash=f"hash-of-{url}",
            size=10,
            filename="file.pdf",
        )

    def release(self, artifact):
        if artifact is not None:
            self.released.append(artifact)


def build_orchestrator(test_settings, page, state, options=None, downloader=None, notifier=None):
    downloader = downloader or FakeDownloader()
    orchestrator = SiteOrchestrator(
        browser=FakeBrowser(page),
        state_site=state.site,
        notifier=notifier or AsyncMock(),
        settings=test_settings,
        options=options or RunOptions(),
        downloader_factory=lambda site: downloader,
        download_retry_delay=0,
    )
    return orchestrator, downloader


def listing_page():
    return make_page(
        "https://example.gob.es/list",
        [doc_item("Bases 2024", "/docs/bases.pdf"), doc_item("Extracto", "/docs/extracto.pdf")],
    )


class TestSiteOrchestrator:
    @pytest.mark.asyncio
    async def test_first_run_reports_everything_new(self, test_settings, site_config, monitor_state):
        orchestrator, downloader = build_orchestrator(test_settings, listing_page(), monitor_state)

        result = await orchestrator.process_site(site_config)

        assert result.success
        assert (result.documents, result.new, result.updated, result.processed) == (2, 2, 0, 2)
        assert orchestrator.notifier.notify_new_document.await_count == 2
        assert len(downloader.released) == 2

        stored = monitor_state.site("boe").documents
        assert [d.hash for d in stored] == [
            "hash-of-https://example.gob.es/docs/bases.pdf",
            "hash-of-https://example.gob.es/docs/extracto.pdf",
        ]
        assert all(d.first_seen for d in stored)
        assert monitor_state.site("boe").last_check

    @pytest.mark.asyncio
    async def test_second_run_without_changes(self, test_settings, site_config, monitor_state):
        orchestrator, downloader = build_orchestrator(test_settings, listing_page(), monitor_state)
        await orchestrator.process_site(site_config)
        first_seen = [d.first_seen for d in monitor_state.site("boe").documents]
        orchestrator.notifier.reset_mock()

        result = await orchestrator.process_site(site_config)

        assert (result.new, result.updated) == (0, 0)
        orchestrator.notifier.notify_new_document.assert_not_awaited()
        assert len(downloader.calls) == 2
        stored = monitor_state.site("boe").documents
        assert [d.first_seen for d in stored] == first_seen
        assert all(d.hash for d in stored)

    @pytest.mark.asyncio
    async def test_moved_document_reported_as_updated(self, test_settings, site_config, monitor_state):
        monitor_state.site("boe").documents = [
            Document(url="https://example.gob.es/old/bases.pdf", title="Bases 2024", hash="h0"),
            Document(url="https://example.gob.es/docs/extracto.pdf", title="Extracto", hash="h1"),
        ]
        orchestrator, _ = build_orchestrator(test_settings, listing_page(), monitor_state)

        result = await orchestrator.process_site(site_config)

        assert (result.new, result.updated) == (0, 1)
        call = orchestrator.notifier.notify_updated_document.await_args
        assert call.args[3] == UpdateReason.URL_CHANGED

    @pytest.mark.asyncio
    async def test_download_failure_still_notifies(self, test_settings, site_config, monitor_state):
        downloader = FakeDownloader(failing={"https://example.gob.es/docs/bases.pdf"})
        site = site_config.model_copy(update={"retries": 2})
        orchestrator, _ = build_orchestrator(
            test_settings, listing_page(), monitor_state, downloader=downloader
        )

        result = await orchestrator.process_site(site)

        assert result.success
        assert result.processed == 1
        assert downloader.calls.count("https://example.gob.es/docs/bases.pdf") == 3
        first_call = orchestrator.notifier.notify_new_document.await_args_list[0]
        assert first_call.args[2] is None
        assert len(monitor_state.site("boe").documents) == 2

    @pytest.mark.asyncio
    async def test_download_retries_back_off_exponentially(
        self, test_settings, site_config, monitor_state, monkeypatch
    ):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)
        downloader = FakeDownloader(failing={"https://example.gob.es/docs/bases.pdf"})
        site = SiteConfig(**site_config.model_dump(exclude={"retries"}))
        orchestrator = SiteOrchestrator(
            browser=FakeBrowser(listing_page()),
            state_site=monitor_state.site,
            notifier=AsyncMock(),
            settings=test_settings,
            downloader_factory=lambda site: downloader,
        )

        await orchestrator.process_site(site)

        assert site.retries == 2
        assert downloader.calls.count("https://example.gob.es/docs/bases.pdf") == 3
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_abort(self, test_settings, site_config, monitor_state):
        notifier = AsyncMock()
        notifier.notify_new_document.side_effect = NotificationError("chat not found", "sendDocument")
        orchestrator, _ = build_orchestrator(
            test_settings, listing_page(), monitor_state, notifier=notifier
        )

        result = await orchestrator.process_site(site_config)

        assert result.success
        assert notifier.notify_new_document.await_count == 2
        assert len(monitor_state.site("boe").documents) == 2

    @pytest.mark.asyncio
    async def test_dry_run_leaves_state_and_stays_silent(self, test_settings, site_config, monitor_state):
        orchestrator, _ = build_orchestrator(
            test_settings, listing_page(), monitor_state, options=RunOptions(dry_run=True)
        )

        result = await orchestrator.process_site(site_config)

        assert result.new == 2
        orchestrator.notifier.notify_new_document.assert_not_awaited()
        assert monitor_state.site("boe").documents == []

    @pytest.mark.asyncio
    async def test_dry_run_with_notify(self, test_settings, site_config, monitor_state):
        orchestrator, _ = build_orchestrator(
            test_settings, listing_page(), monitor_state, options=RunOptions(dry_run=True, notify=True)
        )

        await orchestrator.process_site(site_config)

        assert orchestrator.notifier.notify_new_document.await_count == 2
        assert monitor_state.site("boe").documents == []

    @pytest.mark.asyncio
    async def test_zero_documents_is_neutral_success(self, test_settings, site_config, monitor_state):
        page = make_page("https://example.gob.es/list", [])
        orchestrator, _ = build_orchestrator(test_settings, page, monitor_state)

        result = await orchestrator.process_site(site_config)

        assert result.success
        assert (result.documents, result.new, result.updated) == (0, 0, 0)
        screenshot_path = page.screenshot.await_args.kwargs["path"]
        assert screenshot_path.startswith(str(test_settings.download_dir))
        assert "debug-boe-" in screenshot_path
        assert monitor_state.site("boe").last_check is None

    @pytest.mark.asyncio
    async def test_failure_recorded_and_deduplicated(self, test_settings, site_config, monitor_state):
        page = listing_page()
        page.goto.side_effect = TimeoutError("net::ERR_TIMED_OUT")
        orchestrator, _ = build_orchestrator(test_settings, page, monitor_state)
        browser = orchestrator.browser

        first = await orchestrator.process_site(site_config)
        second = await orchestrator.process_site(site_config)

        assert not first.success and not second.success
        assert "net::ERR_TIMED_OUT" in first.error
        assert not first.duplicate_error
        assert second.duplicate_error
        assert orchestrator.notifier.notify_error.await_count == 1
        context = orchestrator.notifier.notify_error.await_args.args[2]
        assert context["screenshot"] == b"\x89PNG screenshot"
        assert context["url"] == site_config.url
        assert monitor_state.site("boe").last_error.consecutive_count == 2
        assert browser.closed == 2

    @pytest.mark.asyncio
    async def test_success_clears_error(self, test_settings, site_config, monitor_state):
        page = listing_page()
        page.goto.side_effect = [TimeoutError("slow"), None]
        orchestrator, _ = build_orchestrator(test_settings, page, monitor_state)

        await orchestrator.process_site(site_config)
        assert monitor_state.site("boe").last_error is not None

        result = await orchestrator.process_site(site_config)

        assert result.success
        assert monitor_state.site("boe").last_error is None

    @pytest.mark.asyncio
    async def test_step_failure_carries_step(self, test_settings, monitor_state):
        site = SiteConfig.model_validate(
            {
                "id": "sede",
                "name": "Sede",
                "url": "https://sede.gob.es",
                "steps": [{"action": "click", "selector": "#buscar", "retries": 0}],
                "extraction": {"listSelector": "tr", "fields": {"url": "@href"}},
            }
        )
        page = listing_page()
        page.click.side_effect = TimeoutError("Timeout 30000ms exceeded")
        orchestrator, _ = build_orchestrator(test_settings, page, monitor_state)

        result = await orchestrator.process_site(site)

        assert not result.success
        record = monitor_state.site("sede").last_error
        assert record.step["action"] == "click"
        assert record.step["selector"] == "#buscar"
        error = orchestrator.notifier.notify_error.await_args.args[1]
        assert error.kind == ErrorKind.NAVIGATION


class TestRunSummary:
    def test_partial_failure_exits_zero(self):
        summary = RunSummary(
            [SiteResult("a", "A", success=True), SiteResult("b", "B", success=False, error="x")]
        )
        assert summary.exit_code == 0

    def test_all_failed_exits_one(self):
        summary = RunSummary([SiteResult("a", "A", success=False, error="x")])
        assert summary.exit_code == 1

    def test_no_sites_exits_zero(self):
        assert RunSummary().exit_code == 0


class TestMonitorRunner:
    def make_runner(self, test_settings, page, options=None):
        return MonitorRunner(
            settings=test_settings,
            notifier=AsyncMock(),
            options=options or RunOptions(),
            store=StateStore(test_settings.state_file),
            browser=FakeBrowser(page),
            orchestrator_factory=lambda **kwargs: SiteOrchestrator(
                **kwargs,
                downloader_factory=lambda site: FakeDownloader(),
                download_retry_delay=0,
            ),
        )

    @pytest.mark.asyncio
    async def test_saves_state_after_run(self, test_settings, site_config):
        runner = self.make_runner(test_settings, listing_page())

        summary = await runner.run([site_config])

        assert summary.exit_code == 0
        saved = json.loads(test_settings.state_file.read_text(encoding="utf-8"))
        assert len(saved["sites"]["boe"]["documents"]) == 2

    @pytest.mark.asyncio
    async def test_dry_run_does_not_write_state(self, test_settings, site_config):
        runner = self.make_runner(test_settings, listing_page(), RunOptions(dry_run=True))

        await runner.run([site_config])

        assert not test_settings.state_file.exists()

    @pytest.mark.asyncio
    async def test_invalid_sites_reported_as_failures(self, test_settings, site_config):
        runner = self.make_runner(test_settings, listing_page())
        invalid = InvalidSite("broken", "Broken", "Invalid configuration at steps.0: unknown action")

        summary = await runner.run([site_config], [invalid])

        assert [r.site_id for r in summary.failed] == ["broken"]
        assert summary.exit_code == 0

    @pytest.mark.asyncio
    async def test_all_sites_failing_exits_one(self, test_settings, site_config):
        page = listing_page()
        page.goto.side_effect = TimeoutError("down")
        runner = self.make_runner(test_settings, page)

        summary = await runner.run([site_config, site_config.model_copy(update={"id": "other"})])

        assert len(summary.failed) == 2
        assert summary.exit_code == 1
        state = MonitorState.from_dict(json.loads(test_settings.state_file.read_text(encoding="utf-8")))
        assert state.site("other").last_error.consecutive_count == 1
