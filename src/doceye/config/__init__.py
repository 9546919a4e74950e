"""Configuration management system for DocEye."""

from .loader import ConfigLoader
from .settings import (
    AppSettings,
    NotificationSettings,
    ScrapingSettings,
    get_settings,
)
from .types import (
    ConfigError,
    ConfigLoadError,
    ExtractionConfig,
    FieldRule,
    InvalidSite,
    MonitorConfiguration,
    SiteConfig,
    Step,
)

__all__ = [
    "AppSettings",
    "ScrapingSettings",
    "NotificationSettings",
    "get_settings",
    "ConfigLoader",
    "ConfigError",
    "ConfigLoadError",
    "ExtractionConfig",
    "FieldRule",
    "InvalidSite",
    "MonitorConfiguration",
    "SiteConfig",
    "Step",
]
