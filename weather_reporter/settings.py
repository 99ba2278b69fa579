"""Process settings for the weather reporter, read from the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from weather_core.providers.base import DEFAULT_USER_AGENT, RequestConfig


class ImproperlyConfigured(RuntimeError):
    """Raised when settings or service configuration are invalid."""


def env(name: str, default: str | None = None) -> str:
    """Fetch environment variables while allowing explicit defaults."""

    value = os.environ.get(name, default)
    if value is None:
        raise ImproperlyConfigured(f"Environment variable {name} is required")
    return value


def env_float(name: str, default: float) -> float:
    raw = env(name, str(default))
    try:
        return float(raw)
    except ValueError as exc:
        raise ImproperlyConfigured(f"Environment variable {name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    config_path: Path
    http_timeout: float
    proxy: Optional[str]
    user_agent: str
    log_level: str
    retry_base: float
    max_backoff: float

    def request_config(self) -> RequestConfig:
        return RequestConfig(timeout=self.http_timeout, proxy=self.proxy, user_agent=self.user_agent)


def load_settings() -> Settings:
    return Settings(
        config_path=Path(env("REPORTER_CONFIG", "./config")),
        http_timeout=env_float("REPORTER_HTTP_TIMEOUT", 10.0),
        proxy=os.environ.get("HTTPS_PROXY") or None,
        user_agent=env("REPORTER_USER_AGENT", DEFAULT_USER_AGENT),
        log_level=env("REPORTER_LOG_LEVEL", "INFO").upper(),
        retry_base=env_float("REPORTER_RETRY_BASE", 10.0),
        max_backoff=env_float("REPORTER_MAX_BACKOFF", 3600.0),
    )


__all__ = ["ImproperlyConfigured", "Settings", "env", "load_settings"]
