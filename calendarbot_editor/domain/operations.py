"""Persistence operations produced by mutation scope resolution.

Operations are plain immutable values. They name what must change in storage
and carry fully-built events, so the dispatcher never needs to re-read state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from ..calendar.models import CalendarEvent


class EditScope(str, Enum):
    """Breadth of an edit or delete across a series."""

    SINGLE = "single"
    FOLLOWING = "following"
    ALL = "all"


class MutationAction(str, Enum):
    """Kind of mutation being resolved."""

    EDIT = "edit"
    DELETE = "delete"


def exception_id(series_id: str, occurrence_date: date) -> str:
    """Deterministic ID of the exception overriding ``occurrence_date``."""
    return f"{series_id}-exception-{occurrence_date.strftime('%Y%m%d')}"


def split_base_id(base_id: str, split_date: date) -> str:
    """Deterministic ID of the head created by splitting ``base_id`` at ``split_date``."""
    return f"{base_id}-split-{split_date.strftime('%Y%m%d')}"


@dataclass(frozen=True)
class UpsertBase:
    """Create or replace a standalone event or series head."""

    event: CalendarEvent


@dataclass(frozen=True)
class UpsertException:
    """Create or replace the exception for one series date."""

    event: CalendarEvent


@dataclass(frozen=True)
class DeleteException:
    """Remove the exception stored for ``occurrence_date`` in a series.

    ``event_id`` is the ID the exception was stored under. When it is not
    known, the deterministic exception ID for the date is used.
    """

    series_id: str
    occurrence_date: date
    event_id: Optional[str] = None

    @property
    def exception_id(self) -> str:
        if self.event_id is not None:
            return self.event_id
        return exception_id(self.series_id, self.occurrence_date)


@dataclass(frozen=True)
class TruncateSeries:
    """End a series head at ``until``.

    ``event`` is the head rewritten with the bounded rule, ready to be saved.
    """

    base_id: str
    until: datetime
    event: CalendarEvent


@dataclass(frozen=True)
class DeleteSeries:
    """Delete a head (or standalone event) and every exception tied to it."""

    base_id: str
    series_id: str
    exception_ids: tuple[str, ...] = ()


Operation = Union[UpsertBase, UpsertException, DeleteException, TruncateSeries, DeleteSeries]


def describe_operation(op: Operation) -> dict[str, object]:
    """Flatten an operation into log-friendly details."""
    if isinstance(op, (UpsertBase, UpsertException)):
        return {
            "op": type(op).__name__,
            "event_id": op.event.id,
            "start": op.event.start.isoformat(),
            "recurrence": op.event.recurrence,
            "is_deleted": op.event.is_deleted,
        }
    if isinstance(op, DeleteException):
        return {
            "op": "DeleteException",
            "event_id": op.exception_id,
            "series_id": op.series_id,
            "occurrence_date": op.occurrence_date.isoformat(),
        }
    if isinstance(op, TruncateSeries):
        return {
            "op": "TruncateSeries",
            "base_id": op.base_id,
            "until": op.until.isoformat(),
            "recurrence": op.event.recurrence,
        }
    return {
        "op": "DeleteSeries",
        "base_id": op.base_id,
        "series_id": op.series_id,
        "exception_count": len(op.exception_ids),
    }
