"""Runtime settings for the proxy and the CLI."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_URL = "https://api.meldoc.io"
DEFAULT_APP_URL = "https://app.meldoc.io"

# Shorter than the ~30s the AI clients wait, so a clean error reaches them first
DEFAULT_REQUEST_TIMEOUT = 25.0

_LOG_LEVEL_ALIASES = {"WARN": "WARNING"}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ProxySettings(BaseSettings):
    """Settings read once at start-up from the environment."""

    model_config = SettingsConfigDict(
        env_prefix="MELDOC_",
        extra="ignore",
        populate_by_name=True,
    )

    # Bearer token sources, highest priority first (the session sits between them)
    access_token: str | None = None
    mcp_token: str | None = None

    api_url: str = DEFAULT_API_URL
    app_url: str | None = None

    log_level: str = Field(default="ERROR", alias="LOG_LEVEL")
    config_dir: Path = Field(default_factory=lambda: Path.home() / ".meldoc")
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Strip trailing slashes so endpoint paths can be appended."""
        if not v or not v.strip():
            raise ValueError("API URL cannot be empty")
        return v.strip().rstrip("/")

    @field_validator("access_token", "mcp_token", "app_url")
    @classmethod
    def blank_as_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize the level name; unknown names fall back to ERROR."""
        level = (v or "").strip().upper()
        level = _LOG_LEVEL_ALIASES.get(level, level)
        return level if level in _LOG_LEVELS else "ERROR"

    @property
    def credentials_path(self) -> Path:
        return self.config_dir / "credentials.json"

    @property
    def global_config_path(self) -> Path:
        return self.config_dir / "config.json"

    @property
    def frontend_url(self) -> str:
        """App URL used when showing login links from the CLI."""
        return self.app_url or DEFAULT_APP_URL


__all__ = ["ProxySettings", "DEFAULT_API_URL", "DEFAULT_APP_URL"]
