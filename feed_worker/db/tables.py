"""
Single source of truth for database tables that exist after migrations.

Use these names when writing raw SQL. Must match models and alembic/versions.
"""
ALL_TABLE_NAMES = (
    "feeds",
    "feed_sent_events",
    "users",
    "admins",
    "banned_users",
    "event_summary_cache",
    "user_notify_settings",
    "user_notify_sent_events",
)
