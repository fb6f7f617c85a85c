from datetime import timedelta

import pytest

from feed_worker.core.errors import PersistenceError
from feed_worker.domain.types import (
    AdminUser,
    BannedUser,
    EventSummaryCache,
    FeedOrder,
    SentEventMarker,
    User,
    UserNotifySettings,
)
from feed_worker.stores import build_sql_stores

from tests.conftest import make_feed, utc

NOW = utc(2024, 6, 1, 12, 0)


@pytest.fixture
def sql_stores():
    return build_sql_stores("sqlite://", create_tables=True)


def test_feed_round_trip(sql_stores):
    feed = make_feed("f1", keywords_or=("a", "b"), order=FeedOrder.UPDATED_DESC, min_limit=30)
    feed.state.next_run_at = NOW
    sql_stores.feeds.save(feed)
    loaded = sql_stores.feeds.get("f1")
    assert loaded.config == feed.config
    assert loaded.state.next_run_at == NOW
    assert loaded.state.last_run_at is None

    feed.state.last_run_at = NOW
    sql_stores.feeds.save(feed)
    assert [f.state.last_run_at for f in sql_stores.feeds.list()] == [NOW]


def test_markers_upsert_and_cascade_with_feed(sql_stores):
    sql_stores.feeds.save(make_feed("f1"))
    sql_stores.sent_events.save_markers([SentEventMarker("f1", 1, NOW, "v1"), SentEventMarker("f1", 2, NOW)])
    sql_stores.sent_events.save_markers([SentEventMarker("f1", 1, NOW + timedelta(hours=1), "v2")])
    markers = sql_stores.sent_events.get_markers("f1", [1, 2, 3])
    assert set(markers) == {1, 2}
    assert markers[1].event_updated_at == "v2"
    assert markers[1].updated_at == NOW + timedelta(hours=1)

    sql_stores.feeds.delete("f1")
    assert sql_stores.sent_events.get_markers("f1", [1, 2]) == {}


def test_marker_for_unknown_feed_is_a_persistence_error(sql_stores):
    with pytest.raises(PersistenceError):
        sql_stores.sent_events.save_markers([SentEventMarker("ghost", 1, NOW)])


def test_marker_cleanup(sql_stores):
    sql_stores.feeds.save(make_feed("f1"))
    sql_stores.sent_events.save_markers(
        [SentEventMarker("f1", 1, NOW - timedelta(days=100)), SentEventMarker("f1", 2, NOW - timedelta(days=10))]
    )
    assert sql_stores.sent_events.cleanup_older_than(90, NOW) == 1
    assert set(sql_stores.sent_events.get_markers("f1", [1, 2])) == {2}


def test_notify_sent_markers(sql_stores):
    store = sql_stores.notify_sent
    store.mark_sent("u1", 10, NOW - timedelta(days=40))
    store.mark_sent("u1", 10, NOW)
    store.mark_sent("u1", 11, NOW)
    assert store.get_sent_event_ids("u1") == {10, 11}
    assert store.is_sent("u1", 10) and not store.is_sent("u2", 10)
    assert store.cleanup_older_than(30, NOW) == 1
    assert [m.event_id for m in store.list_markers("u1")] == [11]


def test_notify_settings(sql_stores):
    sql_stores.notify_settings.save(UserNotifySettings("u1", enabled=True, minutes_before=30))
    sql_stores.notify_settings.save(UserNotifySettings("u2", enabled=False))
    assert [s.discord_user_id for s in sql_stores.notify_settings.list_enabled()] == ["u1"]
    sql_stores.notify_settings.save(UserNotifySettings("u1", enabled=False, minutes_before=30))
    assert sql_stores.notify_settings.list_enabled() == []
    sql_stores.notify_settings.delete("u2")
    assert sql_stores.notify_settings.find("u2") is None


def test_users_admins_bans(sql_stores):
    sql_stores.users.save(User("u1", "alice"))
    sql_stores.admins.save(AdminUser("u9"))
    sql_stores.bans.save(BannedUser("u2", reason="spam"))
    assert sql_stores.users.find("u1").connpass_nickname == "alice"
    assert [a.discord_user_id for a in sql_stores.admins.list()] == ["u9"]
    assert sql_stores.bans.find("u2").reason == "spam"
    sql_stores.bans.delete("u2")
    assert sql_stores.bans.list() == []


def test_summary_cache(sql_stores):
    sql_stores.summary_cache.save(EventSummaryCache(1, "2024-01-01", "old", cached_at=NOW - timedelta(days=31)))
    sql_stores.summary_cache.save(EventSummaryCache(2, "2024-01-01", "new", cached_at=NOW))
    assert sql_stores.summary_cache.get(2).summary == "new"
    assert sql_stores.summary_cache.cleanup(30, NOW) == 1
    assert sql_stores.summary_cache.get(1) is None
