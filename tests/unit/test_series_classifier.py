"""Unit tests for series membership classification."""

from datetime import date, datetime, timezone

import pytest

from calendarbot_editor.calendar.models import CalendarEvent
from calendarbot_editor.domain.series_classifier import (
    is_exception,
    is_series_head,
    is_series_member,
)

pytestmark = pytest.mark.unit

START = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
END = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def _event(**fields) -> CalendarEvent:
    return CalendarEvent(id=fields.pop("id", "ev"), start=START, end=END, **fields)


@pytest.mark.parametrize(
    "fields,member",
    [
        ({}, False),
        ({"recurrence": "none"}, False),
        ({"recurrence": ""}, False),
        ({"recurrence": "FREQ=DAILY"}, True),
        ({"recurrence": "FREQ=DAILY;INTERVAL=bad"}, True),
        ({"is_virtual": True, "parent_id": "base"}, True),
        ({"is_virtual": True}, False),
        ({"recurrence_group_id": "grp"}, True),
        ({"recurrence_group_id": "grp", "is_virtual": True}, False),
        ({"recurrence_group_id": "grp", "is_deleted": True, "occurrence_date": date(2024, 1, 1)}, True),
    ],
)
def test_is_series_member_truth_table(fields, member):
    assert is_series_member(_event(**fields)) is member


def test_head_and_exception_roles():
    head = _event(recurrence="FREQ=WEEKLY", recurrence_group_id="grp", is_recurrence_base=True)
    exception = _event(id="grp-exception-20240101", recurrence_group_id="grp")
    virtual = _event(id="head_20240101T090000", is_virtual=True, parent_id="head")

    assert is_series_head(head) and not is_exception(head)
    assert is_exception(exception) and not is_series_head(exception)
    assert not is_series_head(virtual) and not is_exception(virtual)


def test_standalone_event_has_no_series_role(lunch):
    assert not is_series_member(lunch)
    assert not is_series_head(lunch)
    assert not is_exception(lunch)
