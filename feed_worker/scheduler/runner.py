"""
Single periodic driver: one BackgroundScheduler with interval jobs for feed ticks,
reminder ticks and the retention cleanup. Each job allows one instance at a time and
coalesces missed runs, so a slow tick is never stacked.
"""
import logging
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler

from feed_worker.config import WorkerConfig
from feed_worker.core.constants import CLEANUP_JOB_ID, FEED_TICK_JOB_ID, NOTIFY_TICK_JOB_ID
from feed_worker.domain.types import utcnow
from feed_worker.scheduler.cleanup_job import CleanupJob
from feed_worker.scheduler.feed_job import FeedScheduler
from feed_worker.scheduler.notify_job import NotificationEngine

logger = logging.getLogger(__name__)


class WorkerRunner:
    def __init__(
        self,
        feed_scheduler: FeedScheduler,
        cleanup_job: CleanupJob,
        config: WorkerConfig | None = None,
        *,
        notification_engine: NotificationEngine | None = None,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        self.feed_scheduler = feed_scheduler
        self.notification_engine = notification_engine
        self.cleanup_job = cleanup_job
        self._config = config or WorkerConfig()
        self._scheduler = scheduler or BackgroundScheduler(timezone=self._config.tz)

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def run_feed_tick(self) -> None:
        try:
            self.feed_scheduler.tick()
        except Exception as e:
            logger.error("Feed tick aborted: %s", e, exc_info=True)

    def run_notify_tick(self) -> None:
        if self.notification_engine is None:
            return
        try:
            result = self.notification_engine.tick()
        except Exception as e:
            logger.error("Reminder tick aborted: %s", e, exc_info=True)
            return
        if result.reminders_sent or result.errors:
            logger.info(
                "Reminder tick: %s users, %s sent, %s errors",
                result.users_checked,
                result.reminders_sent,
                len(result.errors),
            )

    def run_cleanup(self) -> None:
        try:
            self.cleanup_job.run()
        except Exception as e:
            logger.error("Cleanup failed: %s", e, exc_info=True)

    def start(self, *, run_immediately: bool = True) -> None:
        """Register the interval jobs and start ticking. run_immediately fires each job once at startup."""
        job_opts = {"max_instances": 1, "coalesce": True, "replace_existing": True}
        if run_immediately:
            # next_run_time=None would add the job paused, so only pass it when set
            job_opts["next_run_time"] = utcnow() + timedelta(seconds=1)
        self._scheduler.add_job(
            self.run_feed_tick,
            "interval",
            seconds=self._config.feed_check_interval_seconds,
            id=FEED_TICK_JOB_ID,
            **job_opts,
        )
        if self.notification_engine is not None and self._config.enable_event_notify:
            self._scheduler.add_job(
                self.run_notify_tick,
                "interval",
                seconds=self._config.notify_check_interval_ms / 1000,
                id=NOTIFY_TICK_JOB_ID,
                **job_opts,
            )
        self._scheduler.add_job(
            self.run_cleanup,
            "interval",
            hours=self._config.cleanup_interval_hours,
            id=CLEANUP_JOB_ID,
            **job_opts,
        )
        self._scheduler.start()
        logger.info(
            "Worker started: feed tick every %ss, reminders %s, cleanup every %sh",
            self._config.feed_check_interval_seconds,
            "on" if NOTIFY_TICK_JOB_ID in {j.id for j in self._scheduler.get_jobs()} else "off",
            self._config.cleanup_interval_hours,
        )

    def stop(self) -> None:
        """Stop producing ticks, then wait for in-flight feed runs to finish their write-back."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=True)
        self.feed_scheduler.stop(wait=True)
        logger.info("Worker stopped")
