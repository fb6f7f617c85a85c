"""Discord user <-> connpass nickname, plus admin and ban lists."""
from sqlalchemy import Column, DateTime, String, Text

from feed_worker.db.base import Base


class UserRow(Base):
    __tablename__ = "users"

    discord_user_id = Column(String(32), primary_key=True)
    connpass_nickname = Column(String(128), nullable=False)
    registered_at = Column(DateTime(timezone=True), nullable=False)


class AdminRow(Base):
    __tablename__ = "admins"

    discord_user_id = Column(String(32), primary_key=True)
    added_at = Column(DateTime(timezone=True), nullable=False)
    added_by = Column(String(32), nullable=True)


class BannedUserRow(Base):
    __tablename__ = "banned_users"

    discord_user_id = Column(String(32), primary_key=True)
    banned_at = Column(DateTime(timezone=True), nullable=False)
    banned_by = Column(String(32), nullable=True)
    reason = Column(Text, nullable=True)
