"""Shared fakes: a scripted connpass client, recording sinks and in-memory stores."""
from datetime import datetime, timezone
from typing import Callable

import pytest

from feed_worker.config import WorkerConfig
from feed_worker.core.errors import DispatchError
from feed_worker.domain.types import ConnpassEvent, Feed, FeedConfig, NewEventsPayload
from feed_worker.services.connpass import EventSearchParams
from feed_worker.stores import Stores, build_file_stores


def make_event(event_id: int, *, started_at: str = "2024-01-10T19:00:00+09:00", updated_at: str = "2024-01-01T00:00:00+09:00", **kwargs) -> ConnpassEvent:
    return ConnpassEvent(
        id=event_id,
        title=kwargs.pop("title", f"Event {event_id}"),
        url=kwargs.pop("url", f"https://connpass.com/event/{event_id}/"),
        started_at=started_at,
        updated_at=updated_at,
        **kwargs,
    )


def make_feed(feed_id: str = "ch-1", schedule: str = "0 9 * * *", **kwargs) -> Feed:
    return Feed(config=FeedConfig(id=feed_id, channel_id=kwargs.pop("channel_id", feed_id), schedule=schedule, **kwargs))


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeConnpassClient:
    """Returns `events` (or the result of `events(params)`) and records every search."""

    def __init__(self, events: list[ConnpassEvent] | Callable[[EventSearchParams], list[ConnpassEvent]] | None = None):
        self.events = events or []
        self.calls: list[EventSearchParams] = []
        self.error: Exception | None = None

    def search_all(self, params: EventSearchParams, *, max_pages: int = 5) -> list[ConnpassEvent]:
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        if callable(self.events):
            return list(self.events(params))
        return list(self.events)

    def search(self, params: EventSearchParams) -> list[ConnpassEvent]:
        return self.search_all(params)


class RecordingSink:
    """FeedSink and ReminderSink that records batches; set `fail` to raise DispatchError."""

    def __init__(self) -> None:
        self.payloads: list[NewEventsPayload] = []
        self.reminders: list[tuple[str, list[int]]] = []
        self.fail = False

    def handle_new_events(self, payload: NewEventsPayload) -> None:
        if self.fail:
            raise DispatchError(f"channel {payload.channel_id} unavailable")
        self.payloads.append(payload)

    def send_event_reminder(self, discord_user_id: str, events) -> None:
        if self.fail:
            raise DispatchError(f"DM to {discord_user_id} failed")
        self.reminders.append((discord_user_id, [e.id for e in events]))

    @property
    def dispatched_ids(self) -> list[list[int]]:
        return [[e.id for e in p.events] for p in self.payloads]


@pytest.fixture
def stores() -> Stores:
    return build_file_stores(None)


@pytest.fixture
def worker_config() -> WorkerConfig:
    return WorkerConfig(
        feed_concurrency=2,
        max_consecutive_failures=3,
        backoff_base_seconds=60,
        backoff_max_seconds=600,
    )


@pytest.fixture
def client() -> FakeConnpassClient:
    return FakeConnpassClient()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
