"""Feed subscription (config + run state) and its dedup markers.

List-valued filters (keywords, prefectures) are stored as JSON arrays.
"""
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String

from feed_worker.db.base import Base


class FeedRow(Base):
    __tablename__ = "feeds"

    id = Column(String(64), primary_key=True)
    channel_id = Column(String(64), nullable=False)
    schedule = Column(String(128), nullable=False)
    range_days = Column(Integer, nullable=False, default=14)
    keywords_and = Column(JSON, nullable=True)
    keywords_or = Column(JSON, nullable=True)
    location = Column(JSON, nullable=True)
    hashtag = Column(String(128), nullable=True)
    owner_nickname = Column(String(128), nullable=True)
    sort_order = Column("order", String(16), nullable=True)  # FeedOrder value
    min_participant_count = Column(Integer, nullable=True)
    min_limit = Column(Integer, nullable=True)
    use_ai = Column(Boolean, nullable=False, default=False)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    next_run_at = Column(DateTime(timezone=True), nullable=True, index=True)


class FeedSentEvent(Base):
    """One row per event ever dispatched for a feed. Presence = already delivered."""

    __tablename__ = "feed_sent_events"

    feed_id = Column(String(64), ForeignKey("feeds.id", ondelete="CASCADE"), primary_key=True)
    event_id = Column(Integer, primary_key=True)
    event_updated_at = Column(String(64), nullable=True)  # event's own updated_at when delivered
    updated_at = Column(DateTime(timezone=True), nullable=False, index=True)
