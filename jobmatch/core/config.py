from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    api_key: str | None
    log_level: str
    sentry_dsn: str | None
    rate_limit: str
    rate_limit_enabled: bool
    github_token: str | None
    github_api_base_url: str
    http_timeout_s: float
    extraction_config_path: str | None
    cors_allowed_origins: tuple[str, ...]
    cors_allow_credentials: bool


settings = Settings(
    api_key=_get_env("API_KEY"),
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    sentry_dsn=_get_env("SENTRY_DSN"),
    rate_limit=_get_env("RATE_LIMIT", "60/minute") or "60/minute",
    rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
    github_token=_get_env("GITHUB_TOKEN"),
    github_api_base_url=(_get_env("GITHUB_API_BASE_URL", "https://api.github.com") or "https://api.github.com").rstrip("/"),
    http_timeout_s=_get_env_float("HTTP_TIMEOUT_S", 45.0),
    extraction_config_path=_get_env("EXTRACTION_CONFIG_PATH"),
    cors_allowed_origins=_get_env_list(
        "CORS_ALLOWED_ORIGINS",
        ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"],
    ),
    cors_allow_credentials=_get_env_bool("CORS_ALLOW_CREDENTIALS", False),
)
