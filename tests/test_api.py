import pytest
from fastapi.testclient import TestClient

from feed_worker.config import Settings
from feed_worker.domain.types import AdminUser
from feed_worker.main import create_app
from feed_worker.worker import build_worker

from tests.conftest import make_event, make_feed

ADMIN = {"X-Discord-User-Id": "admin-1"}


@pytest.fixture
def worker(stores, client, sink):
    stores.admins.save(AdminUser(discord_user_id="admin-1"))
    stores.feeds.save(make_feed("ch-1"))
    client.events = [make_event(1), make_event(2)]
    return build_worker(Settings(_env_file=None), stores=stores, client=client, feed_sink=sink, reminder_sink=sink)


@pytest.fixture
def api(worker):
    with TestClient(create_app(worker, start_scheduler=False)) as c:
        yield c


def test_health(api):
    r = api.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_status_lists_feeds(api):
    r = api.get("/feeds/status")
    assert r.status_code == 200
    body = r.json()
    [feed] = body["feeds"]
    assert feed["feed_id"] == "ch-1"
    assert feed["status"] == "idle"
    assert feed["schedule_label"] == "Every day 9:00"
    assert body["failed"] == []
    assert body["in_flight"] == []


@pytest.mark.parametrize("headers", [{}, {"X-Discord-User-Id": "someone"}])
def test_admin_routes_require_admin(api, headers):
    assert api.post("/feeds/ch-1/reset", headers=headers).status_code == 403
    assert api.post("/feeds/ch-1/run", headers=headers).status_code == 403


def test_unknown_feed_is_404(api):
    assert api.post("/feeds/nope/reset", headers=ADMIN).status_code == 404
    assert api.post("/feeds/nope/run", headers=ADMIN).status_code == 404


def test_run_dispatches_new_events(api, sink):
    r = api.post("/feeds/ch-1/run", headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["new_count"] == 2
    assert sink.dispatched_ids == [[1, 2]]
    # second run finds nothing new
    assert api.post("/feeds/ch-1/run", headers=ADMIN).json()["new_count"] == 0


def test_reset_clears_failed_feed(api, worker, client):
    client.error = RuntimeError("boom")
    scheduler = worker.feed_scheduler
    for _ in range(5):
        scheduler.run_feed("ch-1")
    assert api.get("/feeds/status").json()["failed"] == ["ch-1"]

    r = api.post("/feeds/ch-1/reset", headers=ADMIN)
    assert r.status_code == 200
    [feed] = api.get("/feeds/status").json()["feeds"]
    assert feed["status"] == "idle"
    assert feed["consecutive_failures"] == 0
