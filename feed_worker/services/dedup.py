"""
Dedup filter: which fetched events a feed has not delivered yet.

Markers are written by mark_sent only after the sink accepted the batch, so a crash
between dispatch and mark_sent re-delivers the batch on the next run (at-least-once).
"""
import logging
from datetime import datetime
from typing import Iterable, Sequence

from feed_worker.domain.types import ConnpassEvent, SentEventMarker, utcnow
from feed_worker.stores.base import SentEventStore

logger = logging.getLogger(__name__)


class DedupFilter:
    def __init__(self, sent_store: SentEventStore, *, resend_updated: bool = False) -> None:
        self._store = sent_store
        self._resend_updated = resend_updated

    def filter_new(self, feed_id: str, events: Sequence[ConnpassEvent]) -> list[ConnpassEvent]:
        """Events without a marker for feed_id, in input order. Raises PersistenceError."""
        if not events:
            return []
        markers = self._store.get_markers(feed_id, {e.id for e in events})
        new: list[ConnpassEvent] = []
        seen: set[int] = set()
        for event in events:
            if event.id in seen:
                continue
            seen.add(event.id)
            marker = markers.get(event.id)
            if marker is None:
                new.append(event)
            elif self._resend_updated and event.updated_at and marker.event_updated_at != event.updated_at:
                new.append(event)
        logger.debug("Feed %s: %s fetched, %s new", feed_id, len(events), len(new))
        return new

    def mark_sent(self, feed_id: str, events: Iterable[ConnpassEvent], now: datetime | None = None) -> None:
        now = now or utcnow()
        self._store.save_markers(
            SentEventMarker(
                feed_id=feed_id,
                event_id=e.id,
                updated_at=now,
                event_updated_at=e.updated_at or None,
            )
            for e in events
        )
