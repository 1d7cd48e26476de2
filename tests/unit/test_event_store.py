"""Unit tests for the JSON-backed EventStore."""

import json
from datetime import date, datetime, timedelta, timezone

import pytest

from calendarbot_editor.calendar.models import CalendarEvent
from calendarbot_editor.calendar.recurrence_expander import expand
from calendarbot_editor.domain.event_store import EventStore
from calendarbot_editor.domain.mutation_resolver import MutationScopeResolver
from calendarbot_editor.domain.operations import (
    DeleteException,
    DeleteSeries,
    EditScope,
    UpsertException,
)

pytestmark = pytest.mark.unit


def _tombstone(day: int) -> CalendarEvent:
    start = datetime(2024, 1, day, 9, 0, tzinfo=timezone.utc)
    return CalendarEvent(
        id=f"standup-group-exception-202401{day:02d}",
        start=start,
        end=start,
        recurrence_group_id="standup-group",
        occurrence_date=date(2024, 1, day),
        is_deleted=True,
    )


def test_memory_store_round_trip(standup, lunch):
    store = EventStore()
    store.save(lunch)
    store.save(standup)

    assert len(store) == 2
    assert store.get("lunch") == lunch
    assert [ev.id for ev in store.all_events()] == ["standup", "lunch"]
    assert store.delete("lunch") is True
    assert store.delete("lunch") is False


def test_store_persists_to_disk(tmp_path, standup):
    path = tmp_path / "events" / "store.json"
    store = EventStore(path)
    store.save(standup)
    store.save(_tombstone(5))

    data = json.loads(path.read_text(encoding="utf-8"))
    assert set(data) == {"standup", "standup-group-exception-20240105"}
    assert data["standup"]["start"] == "2024-01-01T09:00:00+00:00"

    reloaded = EventStore(path)
    assert reloaded.get("standup") == standup
    assert reloaded.get("standup-group-exception-20240105").is_deleted


def test_store_refuses_virtual_occurrences(standup):
    virtual = standup.model_copy(update={"id": "v", "is_virtual": True, "parent_id": "standup"})
    with pytest.raises(ValueError):
        EventStore().save(virtual)


def test_malformed_entries_are_skipped(tmp_path, lunch):
    path = tmp_path / "store.json"
    path.write_text(
        json.dumps({"lunch": lunch.model_dump(mode="json"), "broken": {"id": "broken"}}),
        encoding="utf-8",
    )

    store = EventStore(path)

    assert [ev.id for ev in store.all_events()] == ["lunch"]


def test_unreadable_file_loads_empty(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    assert len(EventStore(path)) == 0


def test_series_queries(standup, lunch):
    store = EventStore()
    store.apply([UpsertException(_tombstone(5)), UpsertException(_tombstone(7))])
    store.save(standup)
    store.save(lunch)

    assert [ev.id for ev in store.base_events()] == ["standup", "lunch"]
    assert [ev.occurrence_date.day for ev in store.exceptions_for("standup-group")] == [5, 7]
    assert store.exceptions_for("other") == []


def test_apply_delete_operations(standup):
    store = EventStore()
    store.save(standup)
    store.save(_tombstone(5))
    store.save(_tombstone(7))

    store.apply([DeleteException(series_id="standup-group", occurrence_date=date(2024, 1, 5))])
    assert store.get("standup-group-exception-20240105") is None

    store.apply(
        [
            DeleteSeries(
                base_id="standup",
                series_id="standup-group",
                exception_ids=("standup-group-exception-20240107",),
            )
        ]
    )
    assert len(store) == 0


def test_following_split_removes_exception_stored_under_other_id(standup):
    store = EventStore()
    store.save(standup)
    moved_start = datetime(2024, 1, 15, 14, 0, tzinfo=timezone.utc)
    store.save(
        CalendarEvent(
            id="legacy-ex",
            title="Moved",
            start=moved_start,
            end=moved_start + standup.duration,
            recurrence_group_id="standup-group",
            occurrence_date=date(2024, 1, 15),
        )
    )
    day = datetime(2024, 1, 10, tzinfo=timezone.utc)
    (target,) = expand(standup, day, day + timedelta(days=1))

    store.apply(
        MutationScopeResolver().resolve(
            target,
            {"title": "Standup v2"},
            EditScope.FOLLOWING,
            base=standup,
            exceptions=store.exceptions_for("standup-group"),
        )
    )

    assert store.get("legacy-ex") is None
    assert store.exceptions_for("standup-group") == []
    fifteenth = datetime(2024, 1, 15, tzinfo=timezone.utc)
    (occurrence,) = expand(
        store.get("standup-split-20240110"),
        fifteenth,
        fifteenth + timedelta(days=1),
        exceptions=store.exceptions_for("standup-group"),
    )
    assert occurrence.title == "Standup v2"
    assert occurrence.start.hour == 9
