"""
Feed scheduler: each tick picks the feeds that are due and not already running, and
hands them to a bounded worker pool. A feed run re-enqueues itself by writing the next
cron instant (success) or a retry_after backoff (failure) when it finishes.

Per-feed runtime state (status, consecutive failures, retry_after, last error) lives
in memory; the persisted Feed only carries last_run_at / next_run_at.
"""
import enum
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta

from feed_worker.config import WorkerConfig
from feed_worker.core.errors import InvalidScheduleError, PersistenceError
from feed_worker.domain.types import Feed, FeedState, utcnow
from feed_worker.services.cron import describe_schedule, next_trigger
from feed_worker.services.feed_executor import FeedExecutor, FeedRunResult
from feed_worker.stores.base import FeedStore, SentEventStore

logger = logging.getLogger(__name__)


class FeedStatus(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    FAILED = "failed"
    INVALID_SCHEDULE = "invalid_schedule"
    UNSCHEDULED = "unscheduled"


@dataclass
class FeedRuntime:
    status: FeedStatus = FeedStatus.IDLE
    consecutive_failures: int = 0
    retry_after: datetime | None = None
    last_error: str | None = None
    # schedule string that failed to parse; cleared once the feed's schedule changes
    invalid_schedule: str | None = None


@dataclass(frozen=True)
class FeedStatusInfo:
    feed_id: str
    channel_id: str
    schedule: str
    schedule_label: str
    status: str
    consecutive_failures: int
    retry_after: datetime | None
    last_error: str | None
    last_run_at: datetime | None
    next_run_at: datetime | None


class FeedScheduler:
    def __init__(
        self,
        feed_store: FeedStore,
        executor: FeedExecutor,
        config: WorkerConfig | None = None,
        *,
        sent_store: SentEventStore | None = None,
    ) -> None:
        self._store = feed_store
        self._executor = executor
        self._sent_store = sent_store
        self._config = config or WorkerConfig()
        self._tz = self._config.tz
        self._lock = threading.Lock()
        self._in_flight: set[str] = set()
        self._runtime: dict[str, FeedRuntime] = {}
        self._pool: ThreadPoolExecutor | None = None
        self._stopped = False

    def _get_pool(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=self._config.feed_concurrency,
                thread_name_prefix="feed_run",
            )
        return self._pool

    def _rt(self, feed_id: str) -> FeedRuntime:
        # caller holds _lock
        rt = self._runtime.get(feed_id)
        if rt is None:
            rt = self._runtime[feed_id] = FeedRuntime()
        return rt

    def backoff_seconds(self, failures: int) -> int:
        if failures <= 0:
            return 0
        return min(self._config.backoff_base_seconds * 2 ** (failures - 1), self._config.backoff_max_seconds)

    @staticmethod
    def is_due(feed: Feed, now: datetime) -> bool:
        """Due when next_run_at has passed or was never set."""
        next_run = feed.state.next_run_at
        return next_run is None or now >= next_run

    def _eligible(self, feed: Feed, now: datetime) -> bool:
        # caller holds _lock
        rt = self._runtime.get(feed.id)
        if rt is None:
            return True
        if rt.status in (FeedStatus.FAILED, FeedStatus.UNSCHEDULED):
            return False
        if rt.status == FeedStatus.INVALID_SCHEDULE:
            if feed.config.schedule == rt.invalid_schedule:
                return False
            rt.status = FeedStatus.IDLE
            rt.invalid_schedule = None
            rt.last_error = None
        if rt.retry_after is not None and now < rt.retry_after:
            return False
        return True

    def tick(self, now: datetime | None = None) -> dict[str, Future]:
        """
        Dispatch every eligible due feed to the pool and return their futures by feed id.
        Does not wait. Raises PersistenceError when the feed list cannot be read.
        """
        now = now or utcnow()
        if self._stopped:
            return {}
        feeds = self._store.list()
        with self._lock:
            to_run: list[Feed] = []
            for feed in feeds:
                if feed.id in self._in_flight:
                    logger.debug("Feed %s still running, skipped", feed.id)
                    continue
                if not self._eligible(feed, now) or not self.is_due(feed, now):
                    continue
                self._in_flight.add(feed.id)
                self._rt(feed.id).status = FeedStatus.RUNNING
                to_run.append(feed)
            if not to_run:
                return {}
        pool = self._get_pool()
        futures = {feed.id: pool.submit(self._run_then_release, feed, now) for feed in to_run}
        logger.debug("Feed tick: dispatched %s feeds", len(futures))
        return futures

    def run_feed(self, feed_id: str, now: datetime | None = None) -> FeedRunResult | None:
        """Run one feed now in the calling thread, ignoring next_run_at and backoff. None if the feed does not exist."""
        now = now or utcnow()
        feed = self._store.get(feed_id)
        if feed is None:
            return None
        with self._lock:
            if feed_id in self._in_flight:
                return FeedRunResult(feed_id=feed_id, skipped=True, error="already running")
            self._in_flight.add(feed_id)
            self._rt(feed_id).status = FeedStatus.RUNNING
        return self._run_then_release(feed, now)

    def _run_then_release(self, feed: Feed, now: datetime) -> FeedRunResult:
        try:
            return self._run(feed, now)
        except Exception as e:
            # _run handles feed errors; this is a bug in the bookkeeping itself
            logger.exception("Feed %s: run crashed: %s", feed.id, e)
            return FeedRunResult(feed_id=feed.id, error=str(e))
        finally:
            with self._lock:
                self._in_flight.discard(feed.id)
                rt = self._rt(feed.id)
                if rt.status == FeedStatus.RUNNING:
                    rt.status = FeedStatus.IDLE

    def _run(self, feed: Feed, now: datetime) -> FeedRunResult:
        # a manual run before the feed is due still moves next_run_at past the pending one
        previous = feed.state.next_run_at
        reference = max(now, previous) if previous is not None else now
        try:
            next_run = next_trigger(feed.config.schedule, reference, self._tz)
        except InvalidScheduleError as e:
            self._mark_invalid(feed, e)
            return FeedRunResult(feed_id=feed.id, error=str(e))

        try:
            result = self._executor.execute(feed.config, now)
            self._save_state(feed, now, next_run)
        except PersistenceError as e:
            logger.error("Feed %s: store unavailable, run aborted: %s", feed.id, e)
            with self._lock:
                self._rt(feed.id).last_error = str(e)
            return FeedRunResult(feed_id=feed.id, error=str(e))
        except Exception as e:
            self._record_failure(feed.id, now, e)
            return FeedRunResult(feed_id=feed.id, error=str(e))

        with self._lock:
            rt = self._rt(feed.id)
            rt.consecutive_failures = 0
            rt.retry_after = None
            rt.last_error = None
        logger.info(
            "Feed %s: %s/%s new events, next run %s",
            feed.id,
            result.new_count,
            result.total,
            next_run.isoformat(),
        )
        return result

    def _save_state(self, feed: Feed, now: datetime, next_run: datetime) -> None:
        """Write back run state onto the stored feed, keeping any config saved while the run was in flight."""
        current = self._store.get(feed.id)
        if current is None:
            logger.info("Feed %s was removed during its run; state not saved", feed.id)
            return
        if current.config.schedule != feed.config.schedule:
            try:
                next_run = next_trigger(current.config.schedule, now, self._tz)
            except InvalidScheduleError:
                # surfaced as invalid_schedule on the next tick
                next_run = None
        self._store.save(Feed(config=current.config, state=FeedState(last_run_at=now, next_run_at=next_run)))

    def _record_failure(self, feed_id: str, now: datetime, error: Exception) -> None:
        with self._lock:
            rt = self._rt(feed_id)
            rt.consecutive_failures += 1
            rt.last_error = str(error)
            failures = rt.consecutive_failures
            if failures >= self._config.max_consecutive_failures:
                rt.status = FeedStatus.FAILED
                rt.retry_after = None
            else:
                rt.retry_after = now + timedelta(seconds=self.backoff_seconds(failures))
            retry_after = rt.retry_after
        if retry_after is None:
            logger.error(
                "Feed %s: failed %s times in a row, giving up until reset: %s",
                feed_id,
                failures,
                error,
            )
        else:
            logger.warning(
                "Feed %s: run failed (%s in a row), retry after %s: %s",
                feed_id,
                failures,
                retry_after.isoformat(),
                error,
            )

    def _mark_invalid(self, feed: Feed, error: InvalidScheduleError) -> None:
        with self._lock:
            rt = self._rt(feed.id)
            rt.status = FeedStatus.INVALID_SCHEDULE
            rt.invalid_schedule = feed.config.schedule
            rt.last_error = str(error)
        logger.error("Feed %s: %s; excluded until its schedule is corrected", feed.id, error)

    def schedule_feed(self, feed_id: str, now: datetime | None = None) -> datetime | None:
        """
        (Re)apply a feed's schedule: clears failed / invalid / unscheduled state and stores
        next_run_at = next cron instant. Raises InvalidScheduleError for a bad schedule.
        Returns the next run, or None if the feed does not exist.
        """
        now = now or utcnow()
        feed = self._store.get(feed_id)
        if feed is None:
            return None
        try:
            next_run = next_trigger(feed.config.schedule, now, self._tz)
        except InvalidScheduleError as e:
            self._mark_invalid(feed, e)
            raise
        feed.state.next_run_at = next_run
        self._store.save(feed)
        with self._lock:
            self._runtime[feed_id] = FeedRuntime(
                status=FeedStatus.RUNNING if feed_id in self._in_flight else FeedStatus.IDLE
            )
        logger.info("Feed %s next run: %s", feed_id, next_run.isoformat())
        return next_run

    def unschedule_feed(self, feed_id: str) -> None:
        """Stop ticking this feed until schedule_feed is called again (in-process only)."""
        with self._lock:
            rt = self._rt(feed_id)
            rt.status = FeedStatus.UNSCHEDULED
            rt.retry_after = None

    def remove_feed(self, feed_id: str) -> bool:
        """Delete the feed and its sent markers. An in-flight run finishes but does not write back."""
        self.unschedule_feed(feed_id)
        existed = self._store.get(feed_id) is not None
        self._store.delete(feed_id)
        if self._sent_store is not None:
            self._sent_store.delete_for_feed(feed_id)
        with self._lock:
            if feed_id not in self._in_flight:
                self._runtime.pop(feed_id, None)
        return existed

    def reset_feed(self, feed_id: str) -> bool:
        """Clear failure / backoff state so the feed is picked up on the next tick."""
        if self._store.get(feed_id) is None:
            return False
        with self._lock:
            rt = self._rt(feed_id)
            rt.consecutive_failures = 0
            rt.retry_after = None
            rt.last_error = None
            rt.invalid_schedule = None
            if rt.status != FeedStatus.RUNNING:
                rt.status = FeedStatus.IDLE
        logger.info("Feed %s reset", feed_id)
        return True

    def status(self) -> list[FeedStatusInfo]:
        feeds = self._store.list()
        with self._lock:
            runtime = {fid: FeedRuntime(**vars(rt)) for fid, rt in self._runtime.items()}
        out: list[FeedStatusInfo] = []
        for feed in feeds:
            rt = runtime.get(feed.id) or FeedRuntime()
            out.append(
                FeedStatusInfo(
                    feed_id=feed.id,
                    channel_id=feed.config.channel_id,
                    schedule=feed.config.schedule,
                    schedule_label=describe_schedule(feed.config.schedule),
                    status=rt.status.value,
                    consecutive_failures=rt.consecutive_failures,
                    retry_after=rt.retry_after,
                    last_error=rt.last_error,
                    last_run_at=feed.state.last_run_at,
                    next_run_at=feed.state.next_run_at,
                )
            )
        return out

    def in_flight(self) -> set[str]:
        with self._lock:
            return set(self._in_flight)

    def stop(self, wait: bool = True) -> None:
        """No new runs after this; with wait=True returns once in-flight runs (and their write-back) finish."""
        self._stopped = True
        pool = self._pool
        if pool is not None:
            pool.shutdown(wait=wait)
        logger.info("Feed scheduler stopped")
