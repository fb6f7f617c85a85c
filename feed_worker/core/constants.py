"""
Centralized constants for the worker (job ids, defaults, lookup tables).

Change job IDs or defaults here instead of scattering literals across the runner and routes.
Runtime-tunable values come from config.Settings; these are only the fallbacks.
"""

# Scheduler job IDs (must match ids used in scheduler/runner.py add_job)
FEED_TICK_JOB_ID = "feed_tick"
NOTIFY_TICK_JOB_ID = "notify_tick"
CLEANUP_JOB_ID = "cleanup"

FEED_CHECK_INTERVAL_SECONDS = 60
NOTIFY_CHECK_INTERVAL_MS = 60_000
CLEANUP_INTERVAL_HOURS = 24

# Feed query defaults
DEFAULT_RANGE_DAYS = 14
SEARCH_PAGE_SIZE = 100  # connpass caps count at 100
SEARCH_MAX_PAGES = 5

# Worker pool and failure handling
FEED_CONCURRENCY = 4
FEED_MAX_CONSECUTIVE_FAILURES = 5
FEED_BACKOFF_BASE_SECONDS = 60
FEED_BACKOFF_MAX_SECONDS = 3600

# Reminders
DEFAULT_NOTIFY_MINUTES_BEFORE = 10
NOTIFY_EVENT_CACHE_TTL_SECONDS = 30 * 60

# Retention (days)
FEED_SENT_EVENTS_RETENTION_DAYS = 90
NOTIFY_SENT_RETENTION_DAYS = 30
SUMMARY_CACHE_RETENTION_DAYS = 30

# Cron expressions are evaluated in this zone unless SCHEDULE_TIMEZONE says otherwise
DEFAULT_SCHEDULE_TIMEZONE = "Asia/Tokyo"

# HTTP
HTTP_TIMEOUT_SECONDS = 15.0
CONNPASS_BASE_URL = "https://connpass.com/api/v2"
CONNPASS_RATE_LIMIT_DELAY_SECONDS = 1.1
DISCORD_API_BASE_URL = "https://discord.com/api/v10"

# Human-readable labels for the schedules offered in the feed command.
# Presentation only; the engine evaluates every expression with the cron evaluator.
SCHEDULE_LABELS: dict[str, str] = {
    "0 9 * * *": "Every day 9:00",
    "0 12 * * *": "Every day 12:00",
    "0 18 * * *": "Every day 18:00",
    "0 9 * * 1-5": "Weekdays 9:00",
    "0 9 * * 1": "Every Monday 9:00",
    "0 18 * * 5": "Every Friday 18:00",
}
