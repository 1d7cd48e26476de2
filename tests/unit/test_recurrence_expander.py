"""
Unit tests for calendarbot_editor.calendar.recurrence_expander.

Covers:
- windowing, ordering and uniqueness of expanded occurrences
- cadence variants (weekly by-day, monthly day-of-month, yearly leap day)
- tombstone / content exceptions and legacy excluded dates
- malformed rules, occurrence cap, DST wall-clock behaviour
- split helpers used by the mutation resolver
"""

import time
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from calendarbot_editor.calendar.models import CalendarEvent
from calendarbot_editor.calendar.recurrence_expander import (
    RecurrenceExpander,
    expand,
    virtual_occurrence_id,
)

pytestmark = pytest.mark.unit

UTC = timezone.utc


def _series(rule: str, start: datetime, tz: str = "UTC", **extra) -> CalendarEvent:
    return CalendarEvent(
        id="series-1",
        title="Series",
        start=start,
        end=start + timedelta(minutes=30),
        timezone=tz,
        recurrence=rule,
        is_recurrence_base=True,
        **extra,
    )


def _exception(series: CalendarEvent, day: date, **fields) -> CalendarEvent:
    slot = datetime.combine(day, series.start.timetz())
    data = {
        "id": f"{series.series_id}-exception-{day:%Y%m%d}",
        "title": series.title,
        "start": slot,
        "end": slot + series.duration,
        "recurrence_group_id": series.series_id,
        "occurrence_date": day,
    }
    data.update(fields)
    return CalendarEvent(**data)


def test_daily_series_over_january(standup, january):
    occurrences = expand(standup, *january)

    assert len(occurrences) == 31
    assert occurrences[0] is standup
    assert all(ev.is_virtual for ev in occurrences[1:])
    starts = [ev.start for ev in occurrences]
    assert starts == sorted(starts)
    assert len({ev.start.date() for ev in occurrences}) == 31
    assert all(january[0] <= s < january[1] for s in starts)


def test_window_is_half_open(standup):
    window_start = datetime(2024, 1, 5, 9, 0, tzinfo=UTC)
    window_end = datetime(2024, 1, 8, 9, 0, tzinfo=UTC)

    occurrences = expand(standup, window_start, window_end)

    assert [ev.start.day for ev in occurrences] == [5, 6, 7]


def test_empty_or_inverted_window_yields_nothing(standup):
    moment = datetime(2024, 1, 5, tzinfo=UTC)
    assert expand(standup, moment, moment) == []
    assert expand(standup, moment, moment - timedelta(days=1)) == []


def test_virtual_occurrence_fields(standup):
    occurrences = expand(
        standup, datetime(2024, 1, 3, tzinfo=UTC), datetime(2024, 1, 4, tzinfo=UTC)
    )

    assert len(occurrences) == 1
    virtual = occurrences[0]
    assert virtual.id == "standup_20240103T090000"
    assert virtual.id == virtual_occurrence_id("standup", virtual.start)
    assert virtual.is_virtual
    assert virtual.parent_id == "standup"
    assert virtual.recurrence_group_id == "standup-group"
    assert virtual.recurrence is None
    assert not virtual.is_recurrence_base
    assert virtual.occurrence_date == date(2024, 1, 3)
    assert virtual.title == "Standup"
    assert virtual.duration == standup.duration


def test_expansion_is_restartable(standup, january):
    first = expand(standup, *january)
    second = expand(standup, *january)
    assert [ev.model_dump() for ev in first] == [ev.model_dump() for ev in second]


def test_weekly_by_day_series():
    series = _series("FREQ=WEEKLY;BYDAY=MO,WE", datetime(2024, 1, 1, 10, 0, tzinfo=UTC))

    occurrences = expand(
        series, datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 1, 11, tzinfo=UTC)
    )

    assert [ev.start.day for ev in occurrences] == [1, 3, 8, 10]


def test_biweekly_series_skips_alternate_weeks():
    series = _series("FREQ=WEEKLY;INTERVAL=2;BYDAY=MO", datetime(2024, 1, 1, 10, 0, tzinfo=UTC))

    occurrences = expand(
        series, datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 2, 1, tzinfo=UTC)
    )

    assert [ev.start.day for ev in occurrences] == [1, 15, 29]


def test_monthly_series_skips_months_without_the_day():
    series = _series("FREQ=MONTHLY", datetime(2024, 1, 31, 8, 0, tzinfo=UTC))

    occurrences = expand(
        series, datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 7, 1, tzinfo=UTC)
    )

    assert [ev.start.month for ev in occurrences] == [1, 3, 5]


def test_yearly_leap_day_series():
    series = _series("FREQ=YEARLY", datetime(2024, 2, 29, 8, 0, tzinfo=UTC))

    occurrences = expand(
        series, datetime(2024, 1, 1, tzinfo=UTC), datetime(2030, 1, 1, tzinfo=UTC)
    )

    assert [ev.start.year for ev in occurrences] == [2024, 2028]


def test_count_bounded_series():
    series = _series("FREQ=DAILY;COUNT=3", datetime(2024, 1, 1, 9, 0, tzinfo=UTC))

    occurrences = expand(
        series, datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 2, 1, tzinfo=UTC)
    )

    assert [ev.start.day for ev in occurrences] == [1, 2, 3]


def test_date_only_until_includes_the_final_day():
    series = _series("FREQ=DAILY;UNTIL=20240103", datetime(2024, 1, 1, 9, 0, tzinfo=UTC))

    occurrences = expand(
        series, datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 2, 1, tzinfo=UTC)
    )

    assert [ev.start.day for ev in occurrences] == [1, 2, 3]


def test_base_start_off_pattern_is_still_first_occurrence():
    # Tuesday start with a Monday-only rule
    series = _series("FREQ=WEEKLY;BYDAY=MO", datetime(2024, 1, 2, 9, 0, tzinfo=UTC))

    occurrences = expand(
        series, datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 1, 16, tzinfo=UTC)
    )

    assert [ev.start.day for ev in occurrences] == [2, 8, 15]
    assert occurrences[0] is series


def test_tombstone_exception_skips_date(standup, january):
    tombstone = _exception(standup, date(2024, 1, 5), is_deleted=True)

    occurrences = expand(standup, *january, exceptions=[tombstone])

    days = [ev.start.day for ev in occurrences]
    assert 5 not in days
    assert len(days) == 30


def test_content_exception_replaces_slot(standup, january):
    moved = _exception(
        standup,
        date(2024, 1, 10),
        title="Standup (moved)",
        start=datetime(2024, 1, 10, 15, 0, tzinfo=UTC),
        end=datetime(2024, 1, 10, 15, 15, tzinfo=UTC),
    )

    occurrences = expand(standup, *january, exceptions=[moved])

    on_tenth = [ev for ev in occurrences if ev.start.date() == date(2024, 1, 10)]
    assert on_tenth == [moved]
    assert len(occurrences) == 31


def test_exception_for_first_occurrence_replaces_base(standup, january):
    override = _exception(standup, date(2024, 1, 1), title="Kickoff")

    occurrences = expand(standup, *january, exceptions=[override])

    assert occurrences[0] is override


def test_exceptions_of_other_series_are_ignored(standup, january):
    foreign = _exception(standup, date(2024, 1, 5), is_deleted=True)
    foreign = foreign.model_copy(update={"recurrence_group_id": "other-group"})

    occurrences = expand(standup, *january, exceptions=[foreign])

    assert len(occurrences) == 31


def test_excluded_dates_are_skipped(january):
    series = _series(
        "FREQ=DAILY",
        datetime(2024, 1, 1, 9, 0, tzinfo=UTC),
        excluded_dates=["2024-01-02", "2024-01-04T09:00:00Z"],
    )

    occurrences = expand(series, *january)

    days = {ev.start.day for ev in occurrences}
    assert 2 not in days and 4 not in days
    assert len(occurrences) == 29


@pytest.mark.parametrize("bad_rule", ["FREQ=DAILY;INTERVAL=x", "FREQ=WEEKLY;BYDAY=XX", "garbage"])
def test_malformed_rule_yields_base_only(bad_rule, january):
    series = _series(bad_rule, datetime(2024, 1, 1, 9, 0, tzinfo=UTC))

    occurrences = expand(series, *january)

    assert occurrences == [series]


@pytest.mark.parametrize(
    "impossible_rule",
    [
        "FREQ=DAILY;BYMONTH=2;BYMONTHDAY=31",
        "FREQ=YEARLY;BYMONTH=4,6;BYMONTHDAY=31",
        "FREQ=MONTHLY;BYMONTHDAY=32",
        "FREQ=DAILY;BYMONTH=13",
    ],
)
def test_rule_matching_no_date_expands_base_quickly(impossible_rule, january):
    series = _series(impossible_rule, datetime(2024, 1, 1, 9, 0, tzinfo=UTC))
    expander = RecurrenceExpander()

    start_time = time.time()
    occurrences = expander.expand(series, *january)
    consumed = expander.count_occurrences_before(series, datetime(2024, 6, 1, tzinfo=UTC))
    elapsed = time.time() - start_time

    assert occurrences == [series]
    assert consumed == 1
    assert elapsed < 1.0


def test_non_recurring_event_expands_to_itself(lunch, january):
    assert expand(lunch, *january) == [lunch]
    assert expand(lunch, datetime(2024, 2, 1, tzinfo=UTC), datetime(2024, 3, 1, tzinfo=UTC)) == []


def test_occurrence_cap_from_settings(standup, january):
    expander = RecurrenceExpander(SimpleNamespace(max_occurrences=5))

    occurrences = expander.expand(standup, *january)

    assert len(occurrences) == 5


def test_old_infinite_series_reaches_recent_window():
    series = _series("FREQ=DAILY", datetime(2015, 1, 1, 9, 0, tzinfo=UTC))
    expander = RecurrenceExpander(SimpleNamespace(max_occurrences=50))

    occurrences = expander.expand(
        series, datetime(2024, 6, 1, tzinfo=UTC), datetime(2024, 6, 8, tzinfo=UTC)
    )

    assert len(occurrences) == 7
    assert occurrences[0].start == datetime(2024, 6, 1, 9, 0, tzinfo=UTC)


def test_wall_clock_time_is_kept_across_dst():
    # 09:00 in New York: 14:00Z before the March 10 2024 switch, 13:00Z after it
    series = _series(
        "FREQ=WEEKLY", datetime(2024, 3, 4, 14, 0, tzinfo=UTC), tz="America/New_York"
    )

    occurrences = expand(
        series, datetime(2024, 3, 1, tzinfo=UTC), datetime(2024, 3, 19, tzinfo=UTC)
    )

    assert [ev.start for ev in occurrences] == [
        datetime(2024, 3, 4, 14, 0, tzinfo=UTC),
        datetime(2024, 3, 11, 13, 0, tzinfo=UTC),
        datetime(2024, 3, 18, 13, 0, tzinfo=UTC),
    ]


def test_previous_occurrence_start(standup):
    expander = RecurrenceExpander()

    assert expander.previous_occurrence_start(
        standup, datetime(2024, 1, 10, 9, 0, tzinfo=UTC)
    ) == datetime(2024, 1, 9, 9, 0, tzinfo=UTC)
    assert expander.previous_occurrence_start(standup, standup.start) is None
    assert expander.previous_occurrence_start(
        standup, datetime(2024, 1, 1, 9, 1, tzinfo=UTC)
    ) == standup.start


def test_count_occurrences_before(standup):
    expander = RecurrenceExpander()

    assert expander.count_occurrences_before(standup, datetime(2024, 1, 10, 9, 0, tzinfo=UTC)) == 9
    assert expander.count_occurrences_before(standup, standup.start) == 0


def test_occurrence_start_on():
    series = _series("FREQ=WEEKLY;BYDAY=MO", datetime(2024, 1, 1, 10, 0, tzinfo=UTC))
    expander = RecurrenceExpander()

    assert expander.occurrence_start_on(series, date(2024, 1, 8)) == datetime(
        2024, 1, 8, 10, 0, tzinfo=UTC
    )
    assert expander.occurrence_start_on(series, date(2024, 1, 9)) is None
