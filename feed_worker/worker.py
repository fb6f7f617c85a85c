"""Wire settings, stores, connpass client and sinks into a WorkerRunner."""
import logging
from dataclasses import dataclass

from feed_worker.config import Settings
from feed_worker.scheduler.cleanup_job import CleanupJob
from feed_worker.scheduler.feed_job import FeedScheduler
from feed_worker.scheduler.notify_job import NotificationEngine
from feed_worker.scheduler.runner import WorkerRunner
from feed_worker.services.connpass import ConnpassClient, ConnpassConfig
from feed_worker.services.dedup import DedupFilter
from feed_worker.services.feed_executor import FeedExecutor
from feed_worker.services.sinks import ConsoleSink, DiscordDMSink, DiscordSink, FeedSink, ReminderSink
from feed_worker.stores import Stores, build_stores

logger = logging.getLogger(__name__)


@dataclass
class Worker:
    settings: Settings
    stores: Stores
    runner: WorkerRunner

    @property
    def feed_scheduler(self) -> FeedScheduler:
        return self.runner.feed_scheduler


def build_sinks(settings: Settings) -> tuple[FeedSink, ReminderSink]:
    tz = settings.worker_config().tz
    if not settings.discord_bot_token:
        logger.warning("DISCORD_BOT_TOKEN not set; notifications are only logged")
        console = ConsoleSink(tz=tz)
        return console, console
    opts = {"timeout": settings.http_timeout_seconds, "tz": tz}
    return DiscordSink(settings.discord_bot_token, **opts), DiscordDMSink(settings.discord_bot_token, **opts)


def build_worker(
    settings: Settings,
    *,
    stores: Stores | None = None,
    client: ConnpassClient | None = None,
    feed_sink: FeedSink | None = None,
    reminder_sink: ReminderSink | None = None,
) -> Worker:
    config = settings.worker_config()
    stores = stores or build_stores(settings)
    if client is None:
        if not settings.connpass_api_key:
            logger.warning("CONNPASS_API_KEY not set; every feed run will fail until it is configured")
        client = ConnpassClient(
            ConnpassConfig(
                api_key=settings.connpass_api_key,
                base_url=settings.connpass_base_url,
                timeout=settings.http_timeout_seconds,
                rate_limit_delay=settings.connpass_rate_limit_delay_seconds,
            )
        )
    if feed_sink is None or reminder_sink is None:
        default_feed_sink, default_reminder_sink = build_sinks(settings)
        feed_sink = feed_sink or default_feed_sink
        reminder_sink = reminder_sink or default_reminder_sink

    executor = FeedExecutor(client, DedupFilter(stores.sent_events), feed_sink, config.tz)
    feed_scheduler = FeedScheduler(stores.feeds, executor, config, sent_store=stores.sent_events)
    engine = None
    if config.enable_event_notify:
        engine = NotificationEngine(
            stores.notify_settings,
            stores.notify_sent,
            stores.users,
            client,
            reminder_sink,
            config,
            ban_store=stores.bans,
        )
    cleanup = CleanupJob(
        sent_events=stores.sent_events,
        notify_sent=stores.notify_sent,
        summary_cache=stores.summary_cache,
        config=config,
    )
    runner = WorkerRunner(feed_scheduler, cleanup, config, notification_engine=engine)
    return Worker(settings=settings, stores=stores, runner=runner)
