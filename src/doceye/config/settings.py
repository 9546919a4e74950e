"""Pydantic settings models for configuration management."""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .types import ConfigError

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class ScrapingSettings(BaseModel):
    """Browser automation configuration."""

    default_timeout: int = 30000  # milliseconds
    download_timeout: int = 30000  # milliseconds
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1920
    viewport_height: int = 1080
    site_delay: float = 1.0  # seconds between sites
    download_max_age: int = 3600  # seconds before a leftover download is swept

    @field_validator("default_timeout", "download_timeout")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @field_validator("site_delay")
    @classmethod
    def validate_delay(cls, v):
        if v < 0:
            raise ValueError("Site delay cannot be negative")
        return v


class NotificationSettings(BaseModel):
    """Telegram delivery configuration."""

    api_base: str = "https://api.telegram.org"
    max_retries: int = 3
    retry_delay: float = 1.0  # seconds, multiplied by the attempt number
    request_timeout: float = 30.0  # seconds

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, v):
        if v < 1:
            raise ValueError("At least one delivery attempt is required")
        return v


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = False
    log_level: str = "INFO"
    json_logs: bool = False

    config_file: Path = Path("config/sites.json")
    state_dir: Path = Path("state")
    download_dir: Path = Path("downloads")

    telegram_bot_token: SecretStr = Field(default=SecretStr(""))
    telegram_chat_id: str = ""

    scraping: ScrapingSettings = Field(default_factory=ScrapingSettings)
    notification: NotificationSettings = Field(default_factory=NotificationSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @property
    def state_file(self) -> Path:
        return self.state_dir / "state.json"


@lru_cache
def get_settings() -> AppSettings:
    """Get the application settings instance."""
    try:
        return AppSettings()
    except Exception as e:
        raise ConfigError(f"Failed to load settings: {str(e)}") from e
