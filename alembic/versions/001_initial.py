"""Initial schema: feeds, sent markers, users/admins/bans, summary cache, reminder settings and markers

Revision ID: 001
Revises:
Create Date: (run alembic upgrade head)

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "feeds",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("channel_id", sa.String(64), nullable=False),
        sa.Column("schedule", sa.String(128), nullable=False),
        sa.Column("range_days", sa.Integer(), nullable=False, server_default="14"),
        sa.Column("keywords_and", sa.JSON(), nullable=True),
        sa.Column("keywords_or", sa.JSON(), nullable=True),
        sa.Column("location", sa.JSON(), nullable=True),
        sa.Column("hashtag", sa.String(128), nullable=True),
        sa.Column("owner_nickname", sa.String(128), nullable=True),
        sa.Column("order", sa.String(16), nullable=True),
        sa.Column("min_participant_count", sa.Integer(), nullable=True),
        sa.Column("min_limit", sa.Integer(), nullable=True),
        sa.Column("use_ai", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_feeds_next_run_at", "feeds", ["next_run_at"], unique=False)

    op.create_table(
        "feed_sent_events",
        sa.Column("feed_id", sa.String(64), sa.ForeignKey("feeds.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("event_id", sa.Integer(), primary_key=True),
        sa.Column("event_updated_at", sa.String(64), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_feed_sent_events_updated_at", "feed_sent_events", ["updated_at"], unique=False)

    op.create_table(
        "users",
        sa.Column("discord_user_id", sa.String(32), primary_key=True),
        sa.Column("connpass_nickname", sa.String(128), nullable=False),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "admins",
        sa.Column("discord_user_id", sa.String(32), primary_key=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("added_by", sa.String(32), nullable=True),
    )
    op.create_table(
        "banned_users",
        sa.Column("discord_user_id", sa.String(32), primary_key=True),
        sa.Column("banned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("banned_by", sa.String(32), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
    )

    op.create_table(
        "event_summary_cache",
        sa.Column("event_id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("updated_at", sa.String(64), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("cached_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_event_summary_cache_cached_at", "event_summary_cache", ["cached_at"], unique=False)

    op.create_table(
        "user_notify_settings",
        sa.Column("discord_user_id", sa.String(32), primary_key=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("minutes_before", sa.Integer(), nullable=False, server_default="15"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_user_notify_settings_enabled", "user_notify_settings", ["enabled"], unique=False)

    op.create_table(
        "user_notify_sent_events",
        sa.Column("discord_user_id", sa.String(32), primary_key=True),
        sa.Column("event_id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_user_notify_sent_events_notified_at", "user_notify_sent_events", ["notified_at"], unique=False
    )


def downgrade() -> None:
    op.drop_table("user_notify_sent_events")
    op.drop_table("user_notify_settings")
    op.drop_table("event_summary_cache")
    op.drop_table("banned_users")
    op.drop_table("admins")
    op.drop_table("users")
    op.drop_table("feed_sent_events")
    op.drop_table("feeds")
