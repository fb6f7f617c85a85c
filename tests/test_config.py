import pytest
from pydantic import ValidationError

from feed_worker.config import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    # keep a developer's .env out of these tests
    monkeypatch.chdir(tmp_path)
    for key in ("STORAGE_TYPE", "LOG_LEVEL", "NOTIFY_CHECK_INTERVAL_MS", "DEFAULT_NOTIFY_MINUTES_BEFORE", "SCHEDULE_TIMEZONE"):
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    s = Settings(_env_file=None)
    assert s.storage_type == "file"
    assert s.notify_check_interval_ms == 60_000
    assert s.default_notify_minutes_before == 10
    cfg = s.worker_config()
    assert cfg.schedule_timezone == "Asia/Tokyo"
    assert cfg.feed_concurrency == 4
    assert cfg.max_consecutive_failures == 5


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("STORAGE_TYPE", "SQLite")
    monkeypatch.setenv("NOTIFY_CHECK_INTERVAL_MS", "30000")
    monkeypatch.setenv("LOG_LEVEL", "warn")
    s = Settings(_env_file=None)
    assert s.storage_type == "sqlite"
    assert s.notify_check_interval_ms == 30_000
    assert s.log_level == "warning"


@pytest.mark.parametrize(
    "field, value",
    [
        ("notify_check_interval_ms", 9_999),
        ("notify_check_interval_ms", 3_600_001),
        ("default_notify_minutes_before", 0),
        ("default_notify_minutes_before", 1441),
        ("storage_type", "redis"),
        ("log_level", "trace"),
        ("feed_concurrency", 0),
        ("feed_backoff_base_seconds", 0),
        ("schedule_timezone", "Mars/Olympus"),
        ("http_timeout_seconds", 0),
    ],
)
def test_rejects_bad_values(field, value):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_backoff_max_never_below_base():
    cfg = Settings(_env_file=None, feed_backoff_base_seconds=120, feed_backoff_max_seconds=60).worker_config()
    assert cfg.backoff_max_seconds == 120
