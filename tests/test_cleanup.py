from datetime import timedelta

from feed_worker.config import WorkerConfig
from feed_worker.domain.types import EventSummaryCache, SentEventMarker
from feed_worker.scheduler.cleanup_job import CleanupJob

from tests.conftest import utc

NOW = utc(2024, 6, 1)


def build_job(stores, **config):
    return CleanupJob(
        sent_events=stores.sent_events,
        notify_sent=stores.notify_sent,
        summary_cache=stores.summary_cache,
        config=WorkerConfig(**config),
    )


def test_old_reminder_marker_is_purged_and_stays_gone(stores):
    stores.notify_sent.mark_sent("u1", 1, NOW - timedelta(days=31))
    stores.notify_sent.mark_sent("u1", 2, NOW - timedelta(days=1))
    job = build_job(stores)
    assert job.run(NOW).notify_sent == 1
    assert stores.notify_sent.get_sent_event_ids("u1") == {2}
    assert job.run(NOW + timedelta(hours=1)).notify_sent == 0
    assert not stores.notify_sent.is_sent("u1", 1)


def test_retention_windows_per_store(stores):
    stores.sent_events.save_markers(
        [
            SentEventMarker("f1", 1, NOW - timedelta(days=91)),
            SentEventMarker("f1", 2, NOW - timedelta(days=89)),
        ]
    )
    stores.summary_cache.save(EventSummaryCache(event_id=1, updated_at="x", summary="s", cached_at=NOW - timedelta(days=40)))
    stores.summary_cache.save(EventSummaryCache(event_id=2, updated_at="x", summary="s", cached_at=NOW))
    result = build_job(stores).run(NOW)
    assert (result.feed_sent_events, result.summary_cache, result.notify_sent) == (1, 1, 0)
    assert result.total_deleted == 2
    assert set(stores.sent_events.get_markers("f1", [1, 2])) == {2}
    assert stores.summary_cache.get(1) is None
    assert stores.summary_cache.get(2) is not None


def test_configured_retention(stores):
    stores.notify_sent.mark_sent("u1", 1, NOW - timedelta(days=3))
    assert build_job(stores, notify_sent_retention_days=2).run(NOW).notify_sent == 1


class _FailingCleanup:
    def cleanup_older_than(self, days, now=None):
        raise RuntimeError("locked")


def test_failing_store_does_not_stop_other_purges(stores):
    stores.notify_sent.mark_sent("u1", 1, NOW - timedelta(days=60))
    job = CleanupJob(sent_events=_FailingCleanup(), notify_sent=stores.notify_sent)
    result = job.run(NOW)
    assert result.feed_sent_events == 0
    assert result.notify_sent == 1
