"""Configuration management service with Pydantic Settings.

This module provides centralized configuration for the Sentry to Slack
relay. Environment variables are loaded and validated once at startup
and the resulting Settings object is passed into the components that
need it.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SLACK_API_URL = "https://slack.com/api/chat.postMessage"


class ConfigurationError(Exception):
    """Raised when a required credential or channel id is not configured."""


class SlackSettings(BaseSettings):
    """Slack Web API settings."""

    model_config = SettingsConfigDict(
        env_prefix="SLACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    bot_token: SecretStr | None = Field(
        default=None,
        alias="SLACK_BOT_TOKEN",
        description="Slack bot token used as the bearer credential",
    )
    channel_backend: str | None = Field(
        default=None,
        alias="SLACK_CHANNEL_BACKEND",
        description="Channel id receiving backend project alerts",
    )
    channel_frontend: str | None = Field(
        default=None,
        alias="SLACK_CHANNEL_FRONTEND",
        description="Channel id receiving frontend project alerts",
    )
    api_url: str = Field(
        default=DEFAULT_SLACK_API_URL,
        alias="SLACK_API_URL",
        description="chat.postMessage endpoint",
    )
    timeout: float = Field(
        default=10.0,
        alias="SLACK_TIMEOUT",
        description="HTTP request timeout in seconds",
        gt=0,
    )
    max_rate_limit_retries: int | None = Field(
        default=None,
        alias="SLACK_MAX_RATE_LIMIT_RETRIES",
        description="Optional cap on rate-limit retries (unset = retry forever)",
        ge=0,
    )

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Validate API URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("SLACK_API_URL must be an HTTP(S) endpoint")
        return v

    @field_validator("channel_backend", "channel_frontend")
    @classmethod
    def blank_channel_is_unset(cls, v: str | None) -> str | None:
        """Treat empty or whitespace-only channel ids as not configured."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @property
    def enabled(self) -> bool:
        """Check if a bot token is configured."""
        return self.bot_token is not None and bool(self.bot_token.get_secret_value())


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files.

    Example:
        ```python
        from sentry_slack_relay.config import get_settings

        settings = get_settings()
        print(settings.slack.channel_backend)
        print(settings.port)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    slack: SlackSettings = Field(default_factory=SlackSettings)

    host: str = Field(
        default="0.0.0.0",
        alias="HOST",
        description="Address the webhook server listens on",
    )
    port: int = Field(
        default=8080,
        alias="PORT",
        description="HTTP port for the webhook server",
        ge=1,
        le=65535,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Format messages without posting them to Slack",
    )

    def redacted_summary(self) -> dict[str, str]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "slack_bot_token": "(set)" if self.slack.enabled else "(not set)",
            "slack_channel_backend": self.slack.channel_backend or "(not set)",
            "slack_channel_frontend": self.slack.channel_frontend or "(not set)",
            "slack_api_url": self.slack.api_url,
            "slack_max_rate_limit_retries": (
                str(self.slack.max_rate_limit_retries)
                if self.slack.max_rate_limit_retries is not None
                else "(unlimited)"
            ),
            "listen": f"{self.host}:{self.port}",
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
