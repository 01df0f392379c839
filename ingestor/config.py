"""Configuration utilities shared by the ingestion pipeline and scheduler."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
DEFAULT_SOURCE = "hackernews"
DEFAULT_FRESHNESS_MINUTES = 5.0
DEFAULT_MARKET_CURRENCY = "usd"
DEFAULT_MARKET_PAGE_SIZE = 100
DEFAULT_CELERY_BROKER_URL = "memory://"
DEFAULT_CELERY_RESULT_BACKEND = "cache+memory://"

_ENV_PREFIX = "INGESTOR_"


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    value = env.get(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _env_str(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name)
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


@dataclass(slots=True)
class TimeoutConfig:
    # None means "use the source's own default"
    request_timeout: Optional[float] = None


@dataclass(slots=True)
class ScheduleConfig:
    """Recurrence and overlap settings for the scheduler."""

    scrape_schedule: Optional[str] = None
    overlap_guard: bool = False


@dataclass(slots=True)
class IngestConfig:
    db_url: Optional[str] = None
    source: str = DEFAULT_SOURCE
    user_agent: str = DEFAULT_USER_AGENT
    freshness_minutes: float = DEFAULT_FRESHNESS_MINUTES
    market_currency: str = DEFAULT_MARKET_CURRENCY
    market_page_size: int = DEFAULT_MARKET_PAGE_SIZE
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "IngestConfig":
        """Build a configuration from ``INGESTOR_*`` environment variables."""

        env = os.environ if env is None else env
        config = cls()
        config.db_url = _env_str(env, f"{_ENV_PREFIX}DATABASE_URL")
        config.source = (_env_str(env, f"{_ENV_PREFIX}SOURCE") or DEFAULT_SOURCE).lower()
        config.user_agent = _env_str(env, f"{_ENV_PREFIX}USER_AGENT") or DEFAULT_USER_AGENT
        config.freshness_minutes = _env_float(
            env, f"{_ENV_PREFIX}FRESHNESS_MINUTES", DEFAULT_FRESHNESS_MINUTES
        )
        config.market_currency = (
            _env_str(env, f"{_ENV_PREFIX}MARKET_CURRENCY") or DEFAULT_MARKET_CURRENCY
        ).lower()
        page_size = _env_float(env, f"{_ENV_PREFIX}MARKET_PAGE_SIZE", None)
        if page_size is not None:
            config.market_page_size = int(page_size)
        config.timeout.request_timeout = _env_float(env, f"{_ENV_PREFIX}REQUEST_TIMEOUT", None)
        config.schedule.scrape_schedule = _env_str(env, f"{_ENV_PREFIX}SCHEDULE")
        config.schedule.overlap_guard = _env_bool(env, f"{_ENV_PREFIX}OVERLAP_GUARD")
        return config


@dataclass(slots=True)
class CeleryConfig:
    """Broker settings for the manual-trigger task surface."""

    broker_url: str = DEFAULT_CELERY_BROKER_URL
    result_backend: str = DEFAULT_CELERY_RESULT_BACKEND
    # Tasks run in-process unless a worker and broker are configured
    always_eager: bool = True

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "CeleryConfig":
        env = os.environ if env is None else env
        return cls(
            broker_url=_env_str(env, f"{_ENV_PREFIX}CELERY_BROKER_URL") or DEFAULT_CELERY_BROKER_URL,
            result_backend=_env_str(env, f"{_ENV_PREFIX}CELERY_RESULT_BACKEND") or DEFAULT_CELERY_RESULT_BACKEND,
            always_eager=_env_bool(env, f"{_ENV_PREFIX}CELERY_TASK_ALWAYS_EAGER", True),
        )


__all__ = ["DEFAULT_USER_AGENT", "CeleryConfig", "IngestConfig", "ScheduleConfig", "TimeoutConfig"]
