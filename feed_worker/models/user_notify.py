"""Reminder preferences and sent markers.

user_notify_sent_events: one row per (user, event) reminder; purged after the retention window.
"""
from sqlalchemy import Boolean, Column, DateTime, Integer, String

from feed_worker.db.base import Base


class UserNotifySettingsRow(Base):
    __tablename__ = "user_notify_settings"

    discord_user_id = Column(String(32), primary_key=True)
    enabled = Column(Boolean, nullable=False, default=False, index=True)
    minutes_before = Column(Integer, nullable=False, default=15)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class UserNotifySentRow(Base):
    __tablename__ = "user_notify_sent_events"

    discord_user_id = Column(String(32), primary_key=True)
    event_id = Column(Integer, primary_key=True, autoincrement=False)
    notified_at = Column(DateTime(timezone=True), nullable=False, index=True)
