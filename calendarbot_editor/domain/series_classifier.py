"""Series membership checks for editable events.

The scope prompt is gated on ``is_series_member``. A false negative here turns a
scoped edit into a silent whole-series edit, so the three conditions are kept
exactly as they are and must not be simplified.
"""

from __future__ import annotations

from ..calendar.models import CalendarEvent


def is_series_member(event: CalendarEvent) -> bool:
    """Return True when ``event`` participates in a recurring series.

    True iff any of:
    1. the event is virtual and has a parent
    2. the event carries a recurrence rule (not empty, not "none")
    3. the event is a persisted member of a recurrence group
    """
    if event.is_virtual and event.parent_id:
        return True
    if event.has_rule:
        return True
    return bool(event.recurrence_group_id) and not event.is_virtual


def is_series_head(event: CalendarEvent) -> bool:
    """Return True for the persisted, rule-bearing event that owns a series."""
    return event.has_rule and not event.is_virtual


def is_exception(event: CalendarEvent) -> bool:
    """Return True for a persisted per-date override (including tombstones)."""
    return bool(event.recurrence_group_id) and not event.is_virtual and not event.has_rule
