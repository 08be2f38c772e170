"""
Runtime settings for sitepull.

Values come from ``SITEPULL_*`` environment variables (pydantic-settings) and
can be overridden programmatically with ``configure()``.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SitepullSettings(BaseSettings):
    """Settings shared by the CLI and the client services."""

    model_config = SettingsConfigDict(
        env_prefix="SITEPULL_",
        env_ignore_empty=True,
        extra="ignore",
    )

    key: str | None = None
    concurrency: int = Field(default=4, ge=1, le=64)
    timeout: float = Field(default=60.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    log_level: str = "INFO"


_settings: SitepullSettings | None = None


def get_settings() -> SitepullSettings:
    """Get cached settings, loading from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = SitepullSettings()
    return _settings


def configure(**overrides: object) -> SitepullSettings:
    """Replace cached settings with overrides applied on top of the current ones."""
    global _settings
    current = get_settings().model_dump()
    current.update({k: v for k, v in overrides.items() if v is not None})
    _settings = SitepullSettings(**current)
    return _settings


def reset_settings() -> None:
    """Drop cached settings (used by tests)."""
    global _settings
    _settings = None


__all__ = ["SitepullSettings", "get_settings", "configure", "reset_settings"]
