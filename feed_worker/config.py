"""
Application settings (Pydantic Settings).

Read once at process start from the environment / .env, validated, then frozen into a
WorkerConfig that is passed by parameter into the scheduler, engine and cleanup job.
"""
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings

from feed_worker.core import constants

# .env in the working directory (project root when run via `feed-worker`)
_env_path = Path.cwd() / ".env"

STORAGE_TYPES = ("file", "sqlite", "postgres")
LOG_LEVELS = ("debug", "info", "warning", "error")


@dataclass(frozen=True)
class WorkerConfig:
    """Snapshot of the engine-facing settings, passed into constructors (and built by hand in tests)."""

    feed_check_interval_seconds: int = constants.FEED_CHECK_INTERVAL_SECONDS
    feed_concurrency: int = constants.FEED_CONCURRENCY
    max_consecutive_failures: int = constants.FEED_MAX_CONSECUTIVE_FAILURES
    backoff_base_seconds: int = constants.FEED_BACKOFF_BASE_SECONDS
    backoff_max_seconds: int = constants.FEED_BACKOFF_MAX_SECONDS
    schedule_timezone: str = constants.DEFAULT_SCHEDULE_TIMEZONE
    enable_event_notify: bool = True
    notify_check_interval_ms: int = constants.NOTIFY_CHECK_INTERVAL_MS
    default_notify_minutes_before: int = constants.DEFAULT_NOTIFY_MINUTES_BEFORE
    notify_cache_ttl_seconds: int = constants.NOTIFY_EVENT_CACHE_TTL_SECONDS
    cleanup_interval_hours: int = constants.CLEANUP_INTERVAL_HOURS
    feed_sent_events_retention_days: int = constants.FEED_SENT_EVENTS_RETENTION_DAYS
    notify_sent_retention_days: int = constants.NOTIFY_SENT_RETENTION_DAYS
    summary_cache_retention_days: int = constants.SUMMARY_CACHE_RETENTION_DAYS

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.schedule_timezone)


class Settings(BaseSettings):
    connpass_api_key: str = ""  # CONNPASS_API_KEY in .env
    connpass_base_url: str = constants.CONNPASS_BASE_URL
    connpass_rate_limit_delay_seconds: float = constants.CONNPASS_RATE_LIMIT_DELAY_SECONDS
    discord_bot_token: str = ""  # DISCORD_BOT_TOKEN; empty -> console sinks
    http_timeout_seconds: float = constants.HTTP_TIMEOUT_SECONDS

    storage_type: str = "file"
    job_store_dir: str = "./data"
    database_url: str = "sqlite:///./data/feed_worker.db"
    log_level: str = "info"
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    feed_check_interval_seconds: int = constants.FEED_CHECK_INTERVAL_SECONDS
    feed_concurrency: int = constants.FEED_CONCURRENCY
    feed_max_consecutive_failures: int = constants.FEED_MAX_CONSECUTIVE_FAILURES
    feed_backoff_base_seconds: int = constants.FEED_BACKOFF_BASE_SECONDS
    feed_backoff_max_seconds: int = constants.FEED_BACKOFF_MAX_SECONDS
    schedule_timezone: str = constants.DEFAULT_SCHEDULE_TIMEZONE

    enable_event_notify: bool = True
    notify_check_interval_ms: int = constants.NOTIFY_CHECK_INTERVAL_MS
    default_notify_minutes_before: int = constants.DEFAULT_NOTIFY_MINUTES_BEFORE

    feed_sent_events_retention_days: int = constants.FEED_SENT_EVENTS_RETENTION_DAYS
    notify_sent_retention_days: int = constants.NOTIFY_SENT_RETENTION_DAYS
    summary_cache_retention_days: int = constants.SUMMARY_CACHE_RETENTION_DAYS

    class Config:
        env_file = _env_path
        extra = "ignore"

    @field_validator("connpass_api_key", "discord_bot_token", mode="after")
    @classmethod
    def strip_secret(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("storage_type", mode="after")
    @classmethod
    def check_storage_type(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in STORAGE_TYPES:
            raise ValueError(f"Invalid storage type {v!r}. Must be one of: {', '.join(STORAGE_TYPES)}")
        return v

    @field_validator("log_level", mode="after")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v == "warn":
            v = "warning"
        if v not in LOG_LEVELS:
            raise ValueError(f"Invalid log level {v!r}. Must be one of: {', '.join(LOG_LEVELS)}")
        return v

    @field_validator("notify_check_interval_ms", mode="after")
    @classmethod
    def check_notify_interval(cls, v: int) -> int:
        if not 10_000 <= v <= 3_600_000:
            raise ValueError("NOTIFY_CHECK_INTERVAL_MS must be between 10000 and 3600000")
        return v

    @field_validator("default_notify_minutes_before", mode="after")
    @classmethod
    def check_minutes_before(cls, v: int) -> int:
        if not 1 <= v <= 1440:
            raise ValueError("DEFAULT_NOTIFY_MINUTES_BEFORE must be between 1 and 1440")
        return v

    @field_validator("feed_concurrency", mode="after")
    @classmethod
    def check_concurrency(cls, v: int) -> int:
        if not 1 <= v <= 16:
            raise ValueError("FEED_CONCURRENCY must be between 1 and 16")
        return v

    @field_validator(
        "feed_check_interval_seconds",
        "feed_max_consecutive_failures",
        "feed_backoff_base_seconds",
        "feed_backoff_max_seconds",
        "feed_sent_events_retention_days",
        "notify_sent_retention_days",
        "summary_cache_retention_days",
        mode="after",
    )
    @classmethod
    def check_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("http_timeout_seconds", mode="after")
    @classmethod
    def check_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("HTTP_TIMEOUT_SECONDS must be finite and positive")
        return v

    @field_validator("schedule_timezone", mode="after")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        v = (v or "").strip() or constants.DEFAULT_SCHEDULE_TIMEZONE
        try:
            ZoneInfo(v)
        except ZoneInfoNotFoundError as e:
            raise ValueError(f"Unknown timezone {v!r}") from e
        return v

    def worker_config(self) -> WorkerConfig:
        return WorkerConfig(
            feed_check_interval_seconds=self.feed_check_interval_seconds,
            feed_concurrency=self.feed_concurrency,
            max_consecutive_failures=self.feed_max_consecutive_failures,
            backoff_base_seconds=self.feed_backoff_base_seconds,
            backoff_max_seconds=max(self.feed_backoff_max_seconds, self.feed_backoff_base_seconds),
            schedule_timezone=self.schedule_timezone,
            enable_event_notify=self.enable_event_notify,
            notify_check_interval_ms=self.notify_check_interval_ms,
            default_notify_minutes_before=self.default_notify_minutes_before,
            feed_sent_events_retention_days=self.feed_sent_events_retention_days,
            notify_sent_retention_days=self.notify_sent_retention_days,
            summary_cache_retention_days=self.summary_cache_retention_days,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
