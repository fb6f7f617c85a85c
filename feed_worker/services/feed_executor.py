"""
One feed run: search connpass with the feed's filters, apply the client-side filters,
drop already-delivered events, dispatch the rest and record them as delivered.

State bookkeeping (last_run_at, next_run_at, failures) belongs to FeedScheduler.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo

from feed_worker.domain.types import ConnpassEvent, FeedConfig, NewEventsPayload
from feed_worker.services.connpass import ConnpassClient, EventSearchParams
from feed_worker.services.dedup import DedupFilter
from feed_worker.services.sinks import FeedSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedRunResult:
    feed_id: str
    total: int = 0
    new_count: int = 0
    dispatched: bool = False
    error: str | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped


def build_search_params(config: FeedConfig, now: datetime, tz: tzinfo) -> EventSearchParams:
    """Date range is today..today+range_days in the schedule timezone."""
    today = now.astimezone(tz).date()
    return EventSearchParams(
        keyword=list(config.keywords_and),
        keyword_or=list(config.keywords_or),
        prefecture=list(config.location),
        owner_nickname=config.owner_nickname,
        ymd_from=today.isoformat(),
        ymd_to=(today + timedelta(days=config.range_days)).isoformat(),
        order=config.order.api_value,
    )


def _normalize_hashtag(tag: str | None) -> str:
    return (tag or "").strip().lower().lstrip("#")


def filter_by_hashtag(events: list[ConnpassEvent], hashtag: str | None) -> list[ConnpassEvent]:
    wanted = _normalize_hashtag(hashtag)
    if not wanted:
        return events
    return [e for e in events if _normalize_hashtag(e.hashtag) == wanted]


def filter_by_size(
    events: list[ConnpassEvent], min_participant_count: int | None, min_limit: int | None
) -> list[ConnpassEvent]:
    """Keep an event when it meets either threshold that is set."""
    if min_participant_count is None and min_limit is None:
        return events

    def _ok(e: ConnpassEvent) -> bool:
        if min_participant_count is not None and e.participant_count >= min_participant_count:
            return True
        if min_limit is not None and e.limit is not None and e.limit >= min_limit:
            return True
        return False

    return [e for e in events if _ok(e)]


class FeedExecutor:
    def __init__(self, client: ConnpassClient, dedup: DedupFilter, sink: FeedSink, tz: tzinfo) -> None:
        self._client = client
        self._dedup = dedup
        self._sink = sink
        self._tz = tz

    def execute(self, config: FeedConfig, now: datetime) -> FeedRunResult:
        """Raises UpstreamError, DispatchError or PersistenceError; markers only follow a delivered batch."""
        params = build_search_params(config, now, self._tz)
        events = self._client.search_all(params)
        events = filter_by_hashtag(events, config.hashtag)
        events = filter_by_size(events, config.min_participant_count, config.min_limit)
        new_events = self._dedup.filter_new(config.id, events)
        if not new_events:
            return FeedRunResult(feed_id=config.id, total=len(events))
        payload = NewEventsPayload(feed_id=config.id, channel_id=config.channel_id, events=tuple(new_events))
        self._sink.handle_new_events(payload)
        self._dedup.mark_sent(config.id, new_events, now)
        logger.info("Feed %s: dispatched %s new of %s events", config.id, len(new_events), len(events))
        return FeedRunResult(feed_id=config.id, total=len(events), new_count=len(new_events), dispatched=True)
