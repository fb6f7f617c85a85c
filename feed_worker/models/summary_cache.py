"""AI summary per event; invalidated when the event's updated_at changes."""
from sqlalchemy import Column, DateTime, Integer, String, Text

from feed_worker.db.base import Base


class EventSummaryCacheRow(Base):
    __tablename__ = "event_summary_cache"

    event_id = Column(Integer, primary_key=True, autoincrement=False)
    updated_at = Column(String(64), nullable=False)
    summary = Column(Text, nullable=False)
    cached_at = Column(DateTime(timezone=True), nullable=False, index=True)
