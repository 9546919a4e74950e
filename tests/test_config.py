"""Tests for configuration loading and settings."""

import json

import pytest
import yaml

from doceye.config import ConfigLoader, ConfigLoadError
from doceye.config.settings import AppSettings, get_settings
from doceye.config.types import ClickStep, ConfigError, FillStep, MonitorConfiguration
from doceye.monitor import select_sites


def site(site_id: str, **overrides) -> dict:
    data = {
        "id": site_id,
        "name": site_id.upper(),
        "url": f"https://{site_id}.gob.es",
        "extraction": {"listSelector": "li", "fields": {"title": "a", "url": "a"}},
    }
    data.update(overrides)
    return data


def write_json(path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


class TestConfigLoader:
    def test_loads_sites_and_steps(self, tmp_path):
        config_file = tmp_path / "sites.json"
        write_json(
            config_file,
            {
                "sites": [
                    site(
                        "boe",
                        steps=[
                            {"action": "click", "selector": "#ok"},
                            {"action": "fill", "selector": "#q", "value": "ayudas"},
                        ],
                    )
                ]
            },
        )

        configuration = ConfigLoader(config_file).load()

        steps = configuration.sites[0].steps
        assert isinstance(steps[0], ClickStep)
        assert isinstance(steps[1], FillStep)
        assert configuration.invalid_sites == []

    def test_falls_back_to_example(self, tmp_path):
        write_json(tmp_path / "sites.example.json", {"sites": [site("example")]})

        configuration = ConfigLoader(tmp_path / "sites.json").load()

        assert [s.id for s in configuration.sites] == ["example"]

    def test_missing_config_raises(self, tmp_path):
        with pytest.raises(ConfigLoadError):
            ConfigLoader(tmp_path / "sites.json").load()

    def test_invalid_json_raises(self, tmp_path):
        config_file = tmp_path / "sites.json"
        config_file.write_text("{broken", encoding="utf-8")

        with pytest.raises(ConfigLoadError):
            ConfigLoader(config_file).load()

    def test_yaml_supported(self, tmp_path):
        config_file = tmp_path / "sites.yaml"
        config_file.write_text(yaml.safe_dump({"sites": [site("yml")]}), encoding="utf-8")

        configuration = ConfigLoader(config_file).load()

        assert configuration.sites[0].id == "yml"

    def test_invalid_site_isolated(self):
        configuration = ConfigLoader().parse(
            {
                "sites": [
                    site("good"),
                    site("bad", steps=[{"action": "teleport"}]),
                    site("off", enabled=False, steps=[{"action": "teleport"}]),
                    site("good"),
                ]
            }
        )

        assert [s.id for s in configuration.sites] == ["good"]
        assert [s.id for s in configuration.invalid_sites] == ["bad", "off", "good"]
        assert configuration.invalid_sites[0].enabled
        assert not configuration.invalid_sites[1].enabled
        assert "steps" in configuration.invalid_sites[0].error

    def test_defaults_apply_to_sites_that_omit_them(self):
        configuration = ConfigLoader().parse(
            {
                "defaults": {"timeout": 45000, "retries": 4},
                "sites": [site("a"), site("b", retries=1)],
            }
        )

        a, b = configuration.sites
        assert (a.timeout, a.retries) == (45000, 4)
        assert (b.timeout, b.retries) == (45000, 1)

    def test_credentials_from_notification_block(self):
        configuration = ConfigLoader().parse(
            {"sites": [], "notification": {"botToken": "1:x", "chatId": -1001}}
        )

        assert configuration.telegram.bot_token == "1:x"
        assert configuration.telegram.chat_id == "-1001"

    def test_inline_site_forced_enabled(self):
        configuration = ConfigLoader().load_inline(json.dumps(site("inline", enabled=False)))

        assert configuration.sites[0].enabled

    def test_inline_must_be_object(self):
        with pytest.raises(ConfigLoadError):
            ConfigLoader().load_inline("[1, 2]")


class TestSelectSites:
    @pytest.fixture
    def configuration(self):
        return ConfigLoader().parse(
            {
                "sites": [
                    site("a"),
                    site("b", enabled=False),
                    site("c", steps=[{"action": "nope"}]),
                ]
            }
        )

    def test_enabled_only(self, configuration):
        sites, invalid = select_sites(configuration)

        assert [s.id for s in sites] == ["a"]
        assert [s.id for s in invalid] == ["c"]

    def test_by_id(self, configuration):
        sites, invalid = select_sites(configuration, "a")
        assert [s.id for s in sites] == ["a"]
        assert invalid == []

    def test_unknown_or_disabled_id(self, configuration):
        with pytest.raises(ConfigError):
            select_sites(configuration, "b")
        with pytest.raises(ConfigError):
            select_sites(MonitorConfiguration(), "missing")


class TestAppSettings:
    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "env-token")
        monkeypatch.setenv("TELEGRAM_CHAT_ID", "99")
        monkeypatch.setenv("SCRAPING__DEFAULT_TIMEOUT", "15000")
        monkeypatch.setenv("STATE_DIR", str(tmp_path / "s"))

        settings = AppSettings(_env_file=None)

        assert settings.telegram_bot_token.get_secret_value() == "env-token"
        assert settings.telegram_chat_id == "99"
        assert settings.scraping.default_timeout == 15000
        assert settings.state_file == tmp_path / "s" / "state.json"

    def test_log_level_validated(self):
        assert AppSettings(_env_file=None, log_level="debug").log_level == "DEBUG"
        with pytest.raises(ValueError):
            AppSettings(_env_file=None, log_level="LOUD")

    def test_get_settings_cached_until_cleared(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        get_settings.cache_clear()
        try:
            first = get_settings()
            assert get_settings() is first
            get_settings.cache_clear()
            assert get_settings() is not first
        finally:
            get_settings.cache_clear()
