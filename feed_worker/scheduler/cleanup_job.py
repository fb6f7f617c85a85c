"""Daily retention purge: feed sent markers, reminder markers and summary cache entries."""
import logging
from dataclasses import dataclass
from datetime import datetime

from feed_worker.config import WorkerConfig
from feed_worker.domain.types import utcnow
from feed_worker.stores.base import SentEventStore, SummaryCacheStore, UserNotifySentStore

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    feed_sent_events: int = 0
    notify_sent: int = 0
    summary_cache: int = 0

    @property
    def total_deleted(self) -> int:
        return self.feed_sent_events + self.notify_sent + self.summary_cache


class CleanupJob:
    def __init__(
        self,
        *,
        sent_events: SentEventStore | None = None,
        notify_sent: UserNotifySentStore | None = None,
        summary_cache: SummaryCacheStore | None = None,
        config: WorkerConfig | None = None,
    ) -> None:
        self._sent_events = sent_events
        self._notify_sent = notify_sent
        self._summary_cache = summary_cache
        self._config = config or WorkerConfig()

    def run(self, now: datetime | None = None) -> CleanupResult:
        """Each store is purged independently; a failing store is logged and leaves its count at 0."""
        now = now or utcnow()
        result = CleanupResult()
        if self._sent_events is not None:
            try:
                result.feed_sent_events = self._sent_events.cleanup_older_than(
                    self._config.feed_sent_events_retention_days, now
                )
            except Exception as e:
                logger.warning("Cleanup of feed sent events failed: %s", e, exc_info=True)
        if self._notify_sent is not None:
            try:
                result.notify_sent = self._notify_sent.cleanup_older_than(self._config.notify_sent_retention_days, now)
            except Exception as e:
                logger.warning("Cleanup of reminder markers failed: %s", e, exc_info=True)
        if self._summary_cache is not None:
            try:
                result.summary_cache = self._summary_cache.cleanup(self._config.summary_cache_retention_days, now)
            except Exception as e:
                logger.warning("Cleanup of summary cache failed: %s", e, exc_info=True)
        if result.total_deleted:
            logger.info(
                "Cleanup removed %s feed markers, %s reminder markers, %s summary cache entries",
                result.feed_sent_events,
                result.notify_sent,
                result.summary_cache,
            )
        else:
            logger.debug("Cleanup: nothing to remove")
        return result
