import json
import logging
from zoneinfo import ZoneInfo

import httpx
import pytest

from feed_worker.core.errors import DispatchError
from feed_worker.domain.types import NewEventsPayload
from feed_worker.services.sinks import ConsoleSink, DiscordDMSink, DiscordSink, format_batch

from tests.conftest import make_event

TOKYO = ZoneInfo("Asia/Tokyo")


def test_format_batch_lists_events_in_local_time():
    [body] = format_batch("New:", [make_event(1, title="PyCon", place="Hall A")], TOKYO)
    assert body.splitlines()[0] == "New:"
    assert "- PyCon (2024-01-10 19:00) @ Hall A" in body
    assert "https://connpass.com/event/1/" in body


def test_format_batch_truncates_long_lists():
    [body] = format_batch("New:", [make_event(i) for i in range(8)], TOKYO)
    assert body.count("\n- ") == 5
    assert body.endswith("... and 3 more")


def test_format_batch_splits_at_message_limit():
    events = [make_event(i, title="x" * 900) for i in range(5)]
    bodies = format_batch("New:", events, TOKYO)
    assert len(bodies) > 1
    assert all(len(b) <= 2000 for b in bodies)


def test_console_sink_logs(caplog):
    caplog.set_level(logging.INFO, logger="feed_worker.services.sinks")
    ConsoleSink(TOKYO).handle_new_events(NewEventsPayload("f1", "c1", (make_event(1),)))
    assert "channel c1" in caplog.text


def test_discord_sink_posts_to_channel():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "m1"})

    sink = DiscordSink("tok", base_url="https://discord.test/api", transport=httpx.MockTransport(handler))
    sink.handle_new_events(NewEventsPayload("f1", "chan-1", (make_event(1),)))
    [req] = requests
    assert req.url.path == "/api/channels/chan-1/messages"
    assert req.headers["Authorization"] == "Bot tok"
    assert "Event 1" in json.loads(req.content)["content"]


def test_discord_sink_raises_dispatch_error():
    sink = DiscordSink("tok", transport=httpx.MockTransport(lambda r: httpx.Response(403, text="Missing Access")))
    with pytest.raises(DispatchError):
        sink.handle_new_events(NewEventsPayload("f1", "chan-1", (make_event(1),)))


def test_discord_sink_transport_error_is_dispatch_error():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    sink = DiscordSink("tok", transport=httpx.MockTransport(handler))
    with pytest.raises(DispatchError):
        sink.handle_new_events(NewEventsPayload("f1", "chan-1", (make_event(1),)))


def test_dm_sink_opens_channel_once():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path.endswith("/users/@me/channels"):
            assert json.loads(request.content) == {"recipient_id": "u1"}
            return httpx.Response(200, json={"id": "dm-9"})
        return httpx.Response(200, json={})

    sink = DiscordDMSink("tok", base_url="https://discord.test", transport=httpx.MockTransport(handler))
    sink.send_event_reminder("u1", [make_event(1)])
    sink.send_event_reminder("u1", [make_event(2)])
    assert paths == ["/users/@me/channels", "/channels/dm-9/messages", "/channels/dm-9/messages"]


def test_sink_requires_token():
    with pytest.raises(ValueError):
        DiscordSink("")
