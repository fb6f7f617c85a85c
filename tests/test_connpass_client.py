import httpx
import pytest

from feed_worker.core.errors import UpstreamError
from feed_worker.services.connpass import ConnpassClient, ConnpassConfig, EventSearchParams


def raw_event(event_id: int, **kwargs) -> dict:
    event = {
        "id": event_id,
        "title": f"Event {event_id}",
        "catch": "catch",
        "url": f"https://connpass.com/event/{event_id}/",
        "hash_tag": "pycon",
        "started_at": "2024-01-10T19:00:00+09:00",
        "ended_at": "2024-01-10T21:00:00+09:00",
        "limit": 50,
        "accepted": 12,
        "waiting": 3,
        "updated_at": "2024-01-01T10:00:00+09:00",
        "place": "Tokyo",
        "group": {"id": 7, "title": "PyGroup", "url": "https://pygroup.connpass.com/"},
    }
    event.update(kwargs)
    return event


def make_client(handler, *, api_key="key", sleeps=None, clock=None) -> ConnpassClient:
    config = ConnpassConfig(api_key=api_key, base_url="https://connpass.test/api/v2", timeout=2.0, rate_limit_delay=1.1)
    return ConnpassClient(
        config,
        transport=httpx.MockTransport(handler),
        sleep=(sleeps.append if sleeps is not None else (lambda s: None)),
        clock=clock or (lambda: 0.0),
    )


def test_search_sends_key_and_params_and_parses_events():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.headers.get("X-API-Key")
        seen["keyword"] = request.url.params.get_list("keyword")
        seen["order"] = request.url.params.get("order")
        return httpx.Response(200, json={"results_available": 1, "results_returned": 1, "events": [raw_event(1)]})

    events = make_client(handler).search(EventSearchParams(keyword=["python", "django"], order=2, ymd_from="2024-01-01"))
    assert seen == {"path": "/api/v2/events/", "key": "key", "keyword": ["python", "django"], "order": "2"}
    event = events[0]
    assert (event.id, event.hashtag, event.participant_count, event.waiting_count, event.limit) == (1, "pycon", 12, 3, 50)
    assert event.group_title == "PyGroup"
    assert event.starts_at.isoformat() == "2024-01-10T10:00:00+00:00"


def test_search_all_follows_pages():
    starts = []

    def handler(request: httpx.Request) -> httpx.Response:
        start = int(request.url.params["start"])
        starts.append(start)
        ids = range(start, min(start + 100, 151))
        return httpx.Response(200, json={"results_available": 150, "events": [raw_event(i) for i in ids]})

    events = make_client(handler).search_all(EventSearchParams())
    assert starts == [1, 101]
    assert len(events) == 150


def test_search_all_stops_at_max_pages():
    def handler(request: httpx.Request) -> httpx.Response:
        start = int(request.url.params["start"])
        return httpx.Response(200, json={"results_available": 1000, "events": [raw_event(start + i) for i in range(100)]})

    assert len(make_client(handler).search_all(EventSearchParams(), max_pages=2)) == 200


@pytest.mark.parametrize("status, retryable", [(429, True), (500, True), (503, True), (400, False), (404, False)])
def test_http_errors_map_to_upstream_error(status, retryable):
    client = make_client(lambda r: httpx.Response(status, text="nope"))
    with pytest.raises(UpstreamError) as exc:
        client.search(EventSearchParams())
    assert exc.value.status_code == status
    assert exc.value.retryable is retryable


def test_timeout_is_retryable():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(UpstreamError) as exc:
        make_client(handler).search(EventSearchParams())
    assert exc.value.retryable


def test_missing_api_key_is_not_retryable():
    with pytest.raises(UpstreamError) as exc:
        make_client(lambda r: httpx.Response(200, json={}), api_key="").search(EventSearchParams())
    assert not exc.value.retryable


@pytest.mark.parametrize(
    "params",
    [
        EventSearchParams(count=0),
        EventSearchParams(count=101),
        EventSearchParams(start=0),
        EventSearchParams(order=4),
        EventSearchParams(ymd_from="2024/01/01"),
        EventSearchParams(event_ids=[0]),
    ],
)
def test_invalid_params_rejected_before_request(params):
    calls = []
    client = make_client(lambda r: calls.append(r) or httpx.Response(200, json={}))
    with pytest.raises(ValueError):
        client.search(params)
    assert calls == []


def test_requests_are_spaced_by_rate_limit_delay():
    sleeps = []
    client = make_client(lambda r: httpx.Response(200, json={"events": []}), sleeps=sleeps, clock=lambda: 100.0)
    client.search(EventSearchParams())
    client.search(EventSearchParams())
    client.search(EventSearchParams())
    assert sleeps == pytest.approx([1.1, 2.2])


def test_get_by_id():
    def handler(request):
        assert request.url.params["event_id"] == "42"
        return httpx.Response(200, json={"events": [raw_event(42)]})

    assert make_client(handler).get_by_id(42).id == 42
    assert make_client(lambda r: httpx.Response(200, json={"events": []})).get_by_id(1) is None
