"""
Starting-soon reminders: every tick, for each user with reminders enabled, DM the events
they joined that start within their minutes_before window. One reminder per
(user, event), recorded in the notify-sent store after the DM went out.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from feed_worker.config import WorkerConfig
from feed_worker.core.errors import UpstreamError
from feed_worker.domain.types import ConnpassEvent, FeedOrder, UserNotifySettings, utcnow
from feed_worker.services.connpass import ConnpassClient, EventSearchParams
from feed_worker.services.sinks import ReminderSink
from feed_worker.stores.base import BanStore, UserNotifySentStore, UserNotifySettingsStore, UserStore

logger = logging.getLogger(__name__)


@dataclass
class NotifyTickResult:
    users_checked: int = 0
    reminders_sent: int = 0
    errors: dict[str, str] = field(default_factory=dict)


@dataclass
class _CachedEvents:
    events: list[ConnpassEvent]
    fetched_at: datetime


class NotificationEngine:
    def __init__(
        self,
        settings_store: UserNotifySettingsStore,
        sent_store: UserNotifySentStore,
        user_store: UserStore,
        client: ConnpassClient,
        sink: ReminderSink,
        config: WorkerConfig | None = None,
        *,
        ban_store: BanStore | None = None,
    ) -> None:
        self._settings = settings_store
        self._sent = sent_store
        self._users = user_store
        self._bans = ban_store
        self._client = client
        self._sink = sink
        self._config = config or WorkerConfig()
        self._tz = self._config.tz
        self._cache_ttl = timedelta(seconds=self._config.notify_cache_ttl_seconds)
        # (nickname, ymd_from, ymd_to) -> events
        self._cache: dict[tuple[str, str, str], _CachedEvents] = {}

    def tick(self, now: datetime | None = None) -> NotifyTickResult:
        """Raises PersistenceError only when the enabled-settings list cannot be read."""
        now = now or utcnow()
        result = NotifyTickResult()
        enabled = self._settings.list_enabled()
        if not enabled:
            return result
        logger.debug("Checking %s users for reminders", len(enabled))
        for settings in enabled:
            result.users_checked += 1
            try:
                result.reminders_sent += self._check_user(settings, now)
            except Exception as e:
                result.errors[settings.discord_user_id] = str(e)
                logger.error("Reminder check for user %s failed: %s", settings.discord_user_id, e)
        self._prune_cache(now)
        return result

    def _check_user(self, settings: UserNotifySettings, now: datetime) -> int:
        user_id = settings.discord_user_id
        if self._bans is not None and self._bans.find(user_id) is not None:
            logger.debug("User %s is banned; reminders skipped", user_id)
            return 0
        user = self._users.find(user_id)
        if user is None or not user.connpass_nickname:
            logger.warning("User %s has reminders on but no connpass nickname registered", user_id)
            return 0
        minutes = settings.minutes_before or self._config.default_notify_minutes_before
        window_end = now + timedelta(minutes=minutes)
        events = self._fetch_user_events(user.connpass_nickname, now, window_end)
        due = select_in_window(events, now, window_end)
        if not due:
            return 0
        sent_ids = self._sent.get_sent_event_ids(user_id)
        unsent = [e for e in due if e.id not in sent_ids]
        if not unsent:
            return 0
        logger.info("Sending %s reminders to user %s", len(unsent), user_id)
        self._sink.send_event_reminder(user_id, unsent)
        for event in unsent:
            self._sent.mark_sent(user_id, event.id, now)
        return len(unsent)

    def _fetch_user_events(self, nickname: str, now: datetime, window_end: datetime) -> list[ConnpassEvent]:
        """Events the user joined on the dates the window spans; cached for cache_ttl, stale copy reused on error."""
        ymd_from = now.astimezone(self._tz).date().isoformat()
        ymd_to = window_end.astimezone(self._tz).date().isoformat()
        key = (nickname, ymd_from, ymd_to)
        cached = self._cache.get(key)
        if cached is not None and now - cached.fetched_at < self._cache_ttl:
            return cached.events
        params = EventSearchParams(
            nickname=nickname,
            ymd_from=ymd_from,
            ymd_to=ymd_to,
            order=FeedOrder.STARTED_ASC.api_value,
        )
        try:
            events = self._client.search_all(params)
        except UpstreamError as e:
            if cached is None:
                raise
            logger.warning("Event fetch for %s failed, using cached list: %s", nickname, e)
            return cached.events
        self._cache[key] = _CachedEvents(events=events, fetched_at=now)
        return events

    def _prune_cache(self, now: datetime) -> None:
        for key in [k for k, v in self._cache.items() if now - v.fetched_at > self._cache_ttl * 2]:
            del self._cache[key]


def select_in_window(events: list[ConnpassEvent], now: datetime, window_end: datetime) -> list[ConnpassEvent]:
    """Events with now < start <= window_end."""
    out = []
    for e in events:
        starts = e.starts_at
        if starts is not None and now < starts <= window_end:
            out.append(e)
    return out
