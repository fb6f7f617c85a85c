from feed_worker.services.dedup import DedupFilter
from feed_worker.stores.file import FileSentEventStore

from tests.conftest import make_event, utc


def test_unmarked_events_pass_in_order():
    dedup = DedupFilter(FileSentEventStore())
    events = [make_event(3), make_event(1), make_event(2)]
    assert [e.id for e in dedup.filter_new("f1", events)] == [3, 1, 2]


def test_marked_events_are_dropped():
    dedup = DedupFilter(FileSentEventStore())
    dedup.mark_sent("f1", [make_event(101), make_event(102)], utc(2024, 1, 1))
    new = dedup.filter_new("f1", [make_event(101), make_event(102), make_event(103)])
    assert [e.id for e in new] == [103]


def test_markers_are_per_feed():
    dedup = DedupFilter(FileSentEventStore())
    dedup.mark_sent("f1", [make_event(1)])
    assert [e.id for e in dedup.filter_new("f2", [make_event(1)])] == [1]


def test_filtering_twice_without_marking_is_stable():
    dedup = DedupFilter(FileSentEventStore())
    dedup.mark_sent("f1", [make_event(1)])
    events = [make_event(1), make_event(2)]
    assert [e.id for e in dedup.filter_new("f1", events)] == [2]
    assert [e.id for e in dedup.filter_new("f1", events)] == [2]


def test_duplicate_ids_in_one_fetch_are_returned_once():
    dedup = DedupFilter(FileSentEventStore())
    assert [e.id for e in dedup.filter_new("f1", [make_event(5), make_event(5)])] == [5]


def test_updated_event_is_not_resent_by_default():
    dedup = DedupFilter(FileSentEventStore())
    dedup.mark_sent("f1", [make_event(7, updated_at="2024-01-01T00:00:00+09:00")])
    assert dedup.filter_new("f1", [make_event(7, updated_at="2024-01-02T00:00:00+09:00")]) == []


def test_resend_updated_treats_changed_event_as_new():
    dedup = DedupFilter(FileSentEventStore(), resend_updated=True)
    dedup.mark_sent("f1", [make_event(7, updated_at="2024-01-01T00:00:00+09:00")])
    assert dedup.filter_new("f1", [make_event(7, updated_at="2024-01-01T00:00:00+09:00")]) == []
    changed = dedup.filter_new("f1", [make_event(7, updated_at="2024-01-02T00:00:00+09:00")])
    assert [e.id for e in changed] == [7]


def test_marker_records_event_updated_at():
    store = FileSentEventStore()
    DedupFilter(store).mark_sent("f1", [make_event(9, updated_at="2024-05-01T10:00:00+09:00")], utc(2024, 5, 2))
    marker = store.get_markers("f1", [9])[9]
    assert marker.event_updated_at == "2024-05-01T10:00:00+09:00"
    assert marker.updated_at == utc(2024, 5, 2)
