from zoneinfo import ZoneInfo

from feed_worker.domain.types import FeedConfig, FeedOrder
from feed_worker.services.feed_executor import build_search_params, filter_by_hashtag, filter_by_size

from tests.conftest import make_event, utc

TOKYO = ZoneInfo("Asia/Tokyo")


def test_search_params_from_feed_config():
    config = FeedConfig(
        id="f1",
        channel_id="c1",
        schedule="0 9 * * *",
        range_days=7,
        keywords_and=("python", "django"),
        keywords_or=("tokyo", "online"),
        location=("tokyo",),
        owner_nickname="someone",
        order=FeedOrder.UPDATED_DESC,
    )
    params = build_search_params(config, utc(2024, 1, 1, 3, 0), TOKYO)
    assert params.keyword == ["python", "django"]
    assert params.keyword_or == ["tokyo", "online"]
    assert params.prefecture == ["tokyo"]
    assert params.owner_nickname == "someone"
    assert params.order == 1
    assert params.count == 100
    assert (params.ymd_from, params.ymd_to) == ("2024-01-01", "2024-01-08")


def test_date_range_uses_schedule_timezone():
    # 2023-12-31 20:00 UTC is already 2024-01-01 in Tokyo
    params = build_search_params(FeedConfig(id="f", channel_id="c", schedule="0 9 * * *"), utc(2023, 12, 31, 20, 0), TOKYO)
    assert params.ymd_from == "2024-01-01"
    assert params.ymd_to == "2024-01-15"
    assert params.order == 2


def test_hashtag_filter_ignores_case_and_hash():
    events = [make_event(1, hashtag="PyCon"), make_event(2, hashtag="#pycon"), make_event(3, hashtag="djangocon")]
    assert [e.id for e in filter_by_hashtag(events, "#pycon")] == [1, 2]
    assert filter_by_hashtag(events, None) == events


def test_size_filter_keeps_event_meeting_either_threshold():
    events = [
        make_event(1, participant_count=50, limit=40),
        make_event(2, participant_count=5, limit=100),
        make_event(3, participant_count=5, limit=10),
        make_event(4, participant_count=5, limit=None),
    ]
    assert [e.id for e in filter_by_size(events, 30, 80)] == [1, 2]
    assert [e.id for e in filter_by_size(events, 30, None)] == [1]
    assert [e.id for e in filter_by_size(events, None, 80)] == [2]
    assert filter_by_size(events, None, None) == events
