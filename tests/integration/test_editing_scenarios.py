"""
End-to-end editing scenarios across session, resolver, scheduler and store.

Each test drives an EditSession against a real EventStore and re-expands the
stored series afterwards, checking what a calendar view would show.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from calendarbot_editor.calendar.recurrence_expander import expand
from calendarbot_editor.domain.event_store import EventStore
from calendarbot_editor.domain.operations import EditScope
from calendarbot_editor.editing.edit_session import EditSession, SessionState
from calendarbot_editor.editing.live_preview import LivePreviewCoordinator
from calendarbot_editor.editing.save_scheduler import SaveScheduler

pytestmark = pytest.mark.integration

UTC = timezone.utc


def _occurrence_on(store: EventStore, series_id: str, day: date):
    start = datetime.combine(day, datetime.min.time(), tzinfo=UTC)
    window = (start, start + timedelta(days=1))
    found = []
    for base in store.base_events():
        if base.series_id == series_id:
            found.extend(expand(base, *window, exceptions=store.exceptions_for(series_id)))
    return found


def _view(store: EventStore, series_id: str, window):
    occurrences = []
    for base in store.base_events():
        if base.series_id == series_id:
            occurrences.extend(expand(base, *window, exceptions=store.exceptions_for(series_id)))
    return sorted(occurrences, key=lambda ev: ev.start)


@pytest.fixture
def store(tmp_path, standup, lunch) -> EventStore:
    store = EventStore(tmp_path / "events.json")
    store.save(standup)
    store.save(lunch)
    return store


def test_following_edit_splits_series_in_store(store, standup, january):
    session = EditSession("s1", SaveScheduler(store))
    (target,) = _occurrence_on(store, "standup-group", date(2024, 1, 10))

    session.load(target, base=store.get("standup"), exceptions=store.exceptions_for("standup-group"))
    session.update_field("title", "Standup v2")
    session.choose_scope(EditScope.FOLLOWING)
    session.close()

    head = store.get("standup")
    assert head.recurrence == "FREQ=DAILY;UNTIL=20240109T090000Z"
    split = store.get("standup-split-20240110")
    assert split.recurrence == "FREQ=DAILY"
    assert split.recurrence_group_id == "standup-group"

    view = _view(store, "standup-group", january)
    assert len(view) == 31
    assert len({ev.start.date() for ev in view}) == 31
    assert {ev.title for ev in view if ev.start.day < 10} == {"Standup"}
    assert {ev.title for ev in view if ev.start.day >= 10} == {"Standup v2"}


def test_single_delete_hides_one_occurrence(store, january):
    session = EditSession("s1", SaveScheduler(store))
    (target,) = _occurrence_on(store, "standup-group", date(2024, 1, 5))

    session.load(target, base=store.get("standup"))
    session.request_delete(EditScope.SINGLE)
    session.close()

    tombstone = store.get("standup-group-exception-20240105")
    assert tombstone.is_deleted
    assert tombstone.occurrence_date == date(2024, 1, 5)
    assert store.get("standup").recurrence == "FREQ=DAILY"

    view = _view(store, "standup-group", january)
    assert len(view) == 30
    assert date(2024, 1, 5) not in {ev.start.date() for ev in view}


async def test_preview_then_debounced_edit(store, lunch):
    preview = LivePreviewCoordinator()
    session = EditSession("s1", SaveScheduler(store, delay_seconds=0.01), preview=preview)
    session.load(store.get("lunch"))

    session.show_preview({"color": "red"})
    assert preview.current("lunch").color == "red"
    session.clear_preview()
    assert store.get("lunch").color == "blue"

    session.update_field("location", "Cafe")
    session.update_field("location", "Canteen")
    await asyncio.sleep(0.05)

    stored = store.get("lunch")
    assert stored.location == "Canteen"
    assert stored.color == "blue"
    assert session.state == SessionState.COMMITTED
    session.close()
    assert session.state == SessionState.CLOSED


def test_single_edit_then_all_edit_keeps_exception(store, january):
    scheduler = SaveScheduler(store)
    session = EditSession("s1", scheduler)

    (tenth,) = _occurrence_on(store, "standup-group", date(2024, 1, 10))
    session.load(tenth, base=store.get("standup"))
    session.update_field("title", "Demo day")
    session.choose_scope(EditScope.SINGLE)
    session.close()

    (twelfth,) = _occurrence_on(store, "standup-group", date(2024, 1, 12))
    session.load(
        twelfth, base=store.get("standup"), exceptions=store.exceptions_for("standup-group")
    )
    session.update_field("title", "Daily sync")
    session.choose_scope(EditScope.ALL)
    session.close()

    titles = {ev.start.day: ev.title for ev in _view(store, "standup-group", january)}
    assert titles[10] == "Demo day"
    assert titles[12] == "Daily sync"
    assert titles[1] == "Daily sync"
