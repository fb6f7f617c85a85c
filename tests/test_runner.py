from apscheduler.schedulers.background import BackgroundScheduler

from feed_worker.config import WorkerConfig
from feed_worker.core.constants import CLEANUP_JOB_ID, FEED_TICK_JOB_ID, NOTIFY_TICK_JOB_ID
from feed_worker.scheduler.cleanup_job import CleanupJob
from feed_worker.scheduler.feed_job import FeedScheduler
from feed_worker.scheduler.notify_job import NotificationEngine
from feed_worker.scheduler.runner import WorkerRunner
from feed_worker.services.dedup import DedupFilter
from feed_worker.services.feed_executor import FeedExecutor


def _runner(stores, client, sink, config, *, with_engine=True):
    executor = FeedExecutor(client, DedupFilter(stores.sent_events), sink, config.tz)
    engine = None
    if with_engine:
        engine = NotificationEngine(stores.notify_settings, stores.notify_sent, stores.users, client, sink, config)
    scheduler = BackgroundScheduler(timezone=config.tz)
    runner = WorkerRunner(
        FeedScheduler(stores.feeds, executor, config),
        CleanupJob(sent_events=stores.sent_events, config=config),
        config,
        notification_engine=engine,
        scheduler=scheduler,
    )
    return runner, scheduler


def test_start_registers_jobs_and_stop_shuts_down(stores, client, sink):
    runner, scheduler = _runner(stores, client, sink, WorkerConfig())
    runner.start(run_immediately=False)
    try:
        assert runner.running
        jobs = {j.id: j for j in scheduler.get_jobs()}
        assert set(jobs) == {FEED_TICK_JOB_ID, NOTIFY_TICK_JOB_ID, CLEANUP_JOB_ID}
        assert all(j.max_instances == 1 and j.coalesce for j in jobs.values())
        assert jobs[NOTIFY_TICK_JOB_ID].trigger.interval.total_seconds() == 60
    finally:
        runner.stop()
    assert not runner.running


def test_notify_job_off_when_disabled(stores, client, sink):
    runner, scheduler = _runner(stores, client, sink, WorkerConfig(enable_event_notify=False))
    runner.start(run_immediately=False)
    try:
        assert NOTIFY_TICK_JOB_ID not in {j.id for j in scheduler.get_jobs()}
    finally:
        runner.stop()


def test_tick_wrappers_swallow_errors(stores, client, sink, caplog):
    runner, _ = _runner(stores, client, sink, WorkerConfig())
    stores.feeds.list = lambda: (_ for _ in ()).throw(RuntimeError("store down"))
    runner.run_feed_tick()
    assert "Feed tick aborted" in caplog.text
