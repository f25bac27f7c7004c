"""Configuration management with pydantic-settings."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PlaywireSettings(BaseSettings):
    """playwire settings loaded from environment variables.

    All settings use the PLAYWIRE_ prefix for environment variables.
    """

    # Driver configuration
    driver_path: Path | None = Field(
        default=None,
        description="Driver executable, or cli.js to run under node. Looked up on PATH if unset",
    )
    node_path: str = Field(
        default="node",
        description="Node executable used when driver_path points at a .js file",
    )

    # Timeouts
    default_timeout_ms: float = Field(
        default=30_000,
        description="Default timeout for actions and waits in milliseconds",
    )
    default_navigation_timeout_ms: float = Field(
        default=30_000,
        description="Default timeout for navigations in milliseconds",
    )
    launch_timeout_ms: float = Field(
        default=180_000,
        description="Timeout for browser launch in milliseconds",
    )
    initialize_timeout_ms: float = Field(
        default=30_000,
        description="Timeout for the driver handshake in milliseconds",
    )
    close_timeout_s: float = Field(
        default=5.0,
        description="Seconds to wait for the driver to exit before killing it",
    )

    # Logging configuration
    log_level: str = Field(default="WARNING", description="Logging level")
    log_format: str = Field(default="console", description="Log format: console or json")
    debug_protocol: bool = Field(
        default=False,
        description="Log every protocol frame at DEBUG level",
    )

    model_config = SettingsConfigDict(
        env_prefix="PLAYWIRE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in ("console", "json"):
            raise ValueError(f"Unsupported log format: {value}. Supported: console, json")
        return value


# Global settings instance
_settings: PlaywireSettings | None = None


def get_settings() -> PlaywireSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = PlaywireSettings()
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance (useful for testing)."""
    global _settings
    _settings = None
