"""Test configuration and fixtures for the DocEye test suite."""

import pytest

from doceye.config.settings import AppSettings, NotificationSettings, ScrapingSettings
from doceye.config.types import SiteConfig
from doceye.storage.types import MonitorState


@pytest.fixture
def test_settings(tmp_path):
    """Settings rooted in a temporary directory, ignoring any local .env."""
    return AppSettings(
        _env_file=None,
        config_file=tmp_path / "config" / "sites.json",
        state_dir=tmp_path / "state",
        download_dir=tmp_path / "downloads",
        telegram_bot_token="",
        telegram_chat_id="",
        scraping=ScrapingSettings(site_delay=0),
        notification=NotificationSettings(retry_delay=0),
    )


@pytest.fixture
def site_config():
    return SiteConfig.model_validate(
        {
            "id": "boe",
            "name": "BOE Ayudas",
            "url": "https://example.gob.es/list",
            "steps": [],
            "extraction": {
                "listSelector": "li.doc",
                "fields": {
                    "title": "a",
                    "url": {"selector": "a", "attribute": "href"},
                },
            },
            "retries": 0,
        }
    )


@pytest.fixture
def monitor_state():
    return MonitorState()
