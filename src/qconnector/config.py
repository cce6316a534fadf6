from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

from qconnector import __version__
from qconnector.exceptions import ConfigError, InvalidConfigurationError


class AwsConfig(BaseModel):
    """Amazon Q Business (sink) configuration values."""

    region: str = "us-east-1"
    application_id: Optional[str] = None
    data_source_id: Optional[str] = None
    index_id: Optional[str] = None
    role_arn: Optional[str] = None


class SourceConfig(BaseModel):
    """External data source configuration values."""

    base_url: Optional[str] = None
    api_key: Optional[str] = None  # Bearer token, wins over username/password
    username: Optional[str] = None
    password: Optional[str] = None
    batch_size: int = 100
    # Page size for listing requests; falls back to batch_size
    page_size: Optional[int] = None
    sync_interval: int = 3600  # seconds


class PluginConfig(BaseModel):
    """Plugin runtime configuration values."""

    name: str = "custom-plugin"
    version: str = __version__
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    max_retries: int = 3
    retry_delay: float = 1.0  # seconds, doubled on every retry
    page_delay: float = 0.1
    batch_delay: float = 1.0
    request_timeout: float = 30.0


class Settings(BaseSettings):
    """Top-level settings loaded from environment variables and .env only."""

    model_config = SettingsConfigDict(
        env_prefix="QCONNECTOR_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    aws: AwsConfig = AwsConfig()
    source: SourceConfig = SourceConfig()
    plugin: PluginConfig = PluginConfig()


REQUIRED_KEYS = (
    "aws.application_id",
    "aws.data_source_id",
    "source.base_url",
)


def load_settings() -> Settings:
    """Load settings from environment variables and .env only."""
    return Settings()  # type: ignore[call-arg]


def missing_required(settings: Settings) -> List[str]:
    missing: List[str] = []
    for key in REQUIRED_KEYS:
        section, field = key.split(".")
        if not getattr(getattr(settings, section), field):
            missing.append(key)
    return missing


def validate_settings(settings: Settings) -> Settings:
    """Check required keys and value ranges.

    Raises `ConfigError` naming every missing key, or
    `InvalidConfigurationError` for out-of-range values.
    """
    missing = missing_required(settings)
    if missing:
        raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
    if settings.source.batch_size <= 0:
        raise InvalidConfigurationError(
            f"source.batch_size must be positive, got {settings.source.batch_size}"
        )
    if settings.source.page_size is not None and settings.source.page_size <= 0:
        raise InvalidConfigurationError(
            f"source.page_size must be positive, got {settings.source.page_size}"
        )
    if settings.source.sync_interval <= 0:
        raise InvalidConfigurationError(
            f"source.sync_interval must be positive, got {settings.source.sync_interval}"
        )
    if settings.plugin.max_retries < 0:
        raise InvalidConfigurationError(
            f"plugin.max_retries must not be negative, got {settings.plugin.max_retries}"
        )
    for name in ("retry_delay", "page_delay", "batch_delay"):
        if getattr(settings.plugin, name) < 0:
            raise InvalidConfigurationError(f"plugin.{name} must not be negative")
    return settings
