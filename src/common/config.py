"""
Application configuration management for Burnmail.

This module provides configuration loading from environment variables
and configuration files, with type-safe settings classes.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import tomllib

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import InvalidConfigError, MissingConfigError


class APISettings(BaseSettings):
    """Mailbox API configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="BURNMAIL_API_",
        extra="ignore",
    )

    base_url: str = Field(
        default="https://api.mail.tm", description="Mailbox API base URL"
    )
    timeout: float = Field(
        default=30.0, gt=0, description="Request timeout in seconds"
    )
    min_request_interval: float = Field(
        default=0.2, ge=0, description="Minimum spacing between requests"
    )
    max_concurrent_requests: int = Field(
        default=5, ge=1, description="Maximum requests in flight"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate API URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")


class RetrySettings(BaseSettings):
    """Retry policy configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="BURNMAIL_RETRY_",
        extra="ignore",
    )

    max_attempts: int = Field(default=3, ge=1, description="Attempts per call")
    base_delay: float = Field(
        default=1.0, ge=0, description="Base delay for exponential backoff"
    )
    max_delay: float = Field(
        default=10.0, ge=0, description="Maximum delay between attempts"
    )


class TUISettings(BaseSettings):
    """Interactive inbox browser settings."""

    model_config = SettingsConfigDict(
        env_prefix="BURNMAIL_TUI_",
        extra="ignore",
    )

    auto_refresh: bool = Field(
        default=True, description="Refresh the inbox periodically"
    )
    refresh_interval: float = Field(
        default=10.0, gt=0, description="Auto-refresh interval in seconds"
    )
    cache_file: str = Field(
        default="~/.burnmail-cache.json", description="Message cache snapshot"
    )
    cache_expiry: float = Field(
        default=300.0, ge=0, description="Cache snapshot lifetime in seconds"
    )
    retry_delay: float = Field(
        default=1.0, ge=0,
        description="Delay before re-issuing a failed load, per retry",
    )
    max_retries: int = Field(
        default=3, ge=1, description="Failed loads before giving up"
    )
    html_cleanup_delay: float = Field(
        default=30.0, ge=0,
        description="Seconds before a browser preview file is removed",
    )
    downloads_dir: Optional[str] = Field(
        None, description="Attachment download directory"
    )

    @property
    def cache_path(self) -> Path:
        """Expanded path of the cache snapshot."""
        return Path(self.cache_file).expanduser()


class StorageSettings(BaseSettings):
    """Local account storage settings."""

    model_config = SettingsConfigDict(
        env_prefix="BURNMAIL_STORAGE_",
        extra="ignore",
    )

    account_file: str = Field(
        default="~/.burnmail.json", description="Encrypted account file"
    )
    keyring_service: str = Field(
        default="burnmail", description="Keyring service name"
    )
    keyring_user: str = Field(
        default="default", description="Keyring user name"
    )

    @property
    def account_path(self) -> Path:
        """Expanded path of the account file."""
        return Path(self.account_file).expanduser()


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="BURNMAIL_LOG_",
        extra="ignore",
    )

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper


class Settings(BaseSettings):
    """Main application settings aggregating all configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BURNMAIL_",
        extra="ignore",
    )

    app_name: str = Field(default="Burnmail", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")

    api: APISettings = Field(default_factory=APISettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    tui: TUISettings = Field(default_factory=TUISettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_toml(cls, path: str | Path) -> "Settings":
        """
        Load settings from a TOML configuration file.

        Args:
            path: Path to the TOML configuration file.

        Returns:
            Settings instance with loaded configuration.

        Raises:
            ConfigurationError: If the file cannot be read or parsed.
        """
        path = Path(path).expanduser()
        if not path.exists():
            raise MissingConfigError("config_file", {"path": str(path)})

        try:
            with open(path, "rb") as f:
                config_data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise InvalidConfigError(
                config_key="config_file",
                value=str(path),
                reason=f"Failed to parse TOML: {e}",
            )

        return cls._from_dict(config_data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Settings":
        """
        Create settings from a dictionary.

        Args:
            data: Configuration dictionary.

        Returns:
            Settings instance.
        """
        sections = {
            "api": APISettings,
            "retry": RetrySettings,
            "tui": TUISettings,
            "storage": StorageSettings,
            "logging": LoggingSettings,
        }
        settings_kwargs: dict[str, Any] = {}

        if "app" in data:
            settings_kwargs.update(data["app"])

        for name, section_cls in sections.items():
            if name in data:
                settings_kwargs[name] = section_cls(**data[name])

        return cls(**settings_kwargs)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings come from environment variables and, when
    ``BURNMAIL_CONFIG_FILE`` names an existing file, from that TOML file.
    The result is cached for the life of the process.

    Returns:
        Settings instance.
    """
    config_file = os.getenv("BURNMAIL_CONFIG_FILE")

    if config_file and Path(config_file).expanduser().exists():
        settings = Settings.from_toml(config_file)
    else:
        settings = Settings()

    return settings


def reload_settings() -> Settings:
    """
    Reload settings, clearing the cache.

    Returns:
        Fresh Settings instance.
    """
    get_settings.cache_clear()
    return get_settings()
