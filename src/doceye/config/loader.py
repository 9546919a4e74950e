"""Configuration loading utilities."""

import json
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from ..utils.logging import get_structured_logger
from .types import (
    ConfigLoadError,
    InvalidSite,
    MonitorConfiguration,
    SiteConfig,
    TelegramCredentials,
)

logger = get_structured_logger(__name__)

# Keys from the "defaults" section copied onto sites that omit them
DEFAULTABLE_KEYS = ("timeout", "downloadTimeout", "retries")


class ConfigLoader:
    """Loads the monitored-site configuration document."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file or "config/sites.json")

    @property
    def example_file(self) -> Path:
        return self.config_file.with_name("sites.example.json")

    def load(self, fallback_to_example: bool = True) -> MonitorConfiguration:
        """Load and parse the configuration file."""
        path = self.config_file
        if not path.exists() and fallback_to_example:
            logger.warning(
                "Config file not found, trying example",
                config_file=str(path),
                example_file=str(self.example_file),
            )
            path = self.example_file

        if not path.exists():
            raise ConfigLoadError(
                f"No configuration found at {self.config_file}; "
                "create it or pass --config-json"
            )

        data = self.read_document(path)
        logger.info("Loaded configuration", config_file=str(path))
        return self.parse(data)

    def load_inline(self, raw_json: str) -> MonitorConfiguration:
        """Parse a single inline site definition (always enabled)."""
        try:
            site_data = json.loads(raw_json)
        except json.JSONDecodeError as e:
            raise ConfigLoadError(f"Invalid inline JSON config: {str(e)}") from e

        if not isinstance(site_data, dict):
            raise ConfigLoadError("Inline config must be a JSON object describing one site")

        return self.parse({"sites": [{**site_data, "enabled": True}]})

    @staticmethod
    def read_document(path: Path) -> dict[str, Any]:
        """Read a JSON or YAML document, chosen by file suffix."""
        try:
            with open(path, encoding="utf-8") as f:
                if path.suffix.lower() in (".yaml", ".yml"):
                    data = yaml.safe_load(f) or {}
                else:
                    data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigLoadError(f"Failed to parse config file {path}: {str(e)}") from e
        except OSError as e:
            raise ConfigLoadError(f"Failed to read config file {path}: {str(e)}") from e

        if not isinstance(data, dict):
            raise ConfigLoadError(f"Config file {path} must contain an object")
        return data

    def parse(self, data: dict[str, Any]) -> MonitorConfiguration:
        """Parse a configuration document, isolating invalid site entries."""
        defaults = data.get("defaults") or {}
        sites: list[SiteConfig] = []
        invalid: list[InvalidSite] = []
        seen_ids: set[str] = set()

        for index, site_data in enumerate(data.get("sites") or []):
            if not isinstance(site_data, dict):
                invalid.append(
                    InvalidSite(f"site-{index}", f"site-{index}", "Site entry is not an object")
                )
                continue

            merged = self._apply_defaults(site_data, defaults)
            site_id = str(merged.get("id") or f"site-{index}")

            try:
                site = SiteConfig.model_validate(merged)
            except ValidationError as e:
                logger.error("Invalid site configuration", site_id=site_id, error=str(e))
                invalid.append(
                    InvalidSite(
                        site_id,
                        str(merged.get("name") or site_id),
                        _short_error(e),
                        enabled=merged.get("enabled") is not False,
                    )
                )
                continue

            if site.id in seen_ids:
                logger.error("Duplicate site id", site_id=site.id)
                invalid.append(InvalidSite(site.id, site.name, "Duplicate site id"))
                continue

            seen_ids.add(site.id)
            sites.append(site)

        return MonitorConfiguration(
            sites=sites,
            invalid_sites=invalid,
            telegram=self._parse_credentials(data),
        )

    @staticmethod
    def _apply_defaults(site_data: dict[str, Any], defaults: dict[str, Any]) -> dict[str, Any]:
        merged = dict(site_data)
        for key in DEFAULTABLE_KEYS:
            if key in defaults and key not in merged:
                merged[key] = defaults[key]
        return merged

    @staticmethod
    def _parse_credentials(data: dict[str, Any]) -> TelegramCredentials:
        block = data.get("telegram") or data.get("notification") or {}
        if not isinstance(block, dict):
            return TelegramCredentials()
        try:
            return TelegramCredentials.model_validate(block)
        except ValidationError as e:
            raise ConfigLoadError(f"Invalid notification credentials: {str(e)}") from e


def _short_error(error: ValidationError) -> str:
    """Render the first validation problem on one line."""
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid configuration at {location}: {first.get('msg')}"
