"""Data models for editable calendar events."""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Mapping, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from ..core.timezone_utils import ensure_utc
from .recurrence_rule import RecurrenceRule, is_empty_recurrence, parse_recurrence


class EventColor(str, Enum):
    """Palette of event colors; BLUE is the default for new events."""

    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    PURPLE = "purple"
    GRAY = "gray"


DEFAULT_COLOR = EventColor.BLUE


class ReminderOption(str, Enum):
    """Notification lead times."""

    AT_TIME = "at-time"
    FIVE_MINUTES = "5min"
    TEN_MINUTES = "10min"
    THIRTY_MINUTES = "30min"
    ONE_HOUR = "1hour"
    ONE_DAY = "1day"
    ONE_WEEK = "1week"
    ONE_MONTH = "1month"


class Urgency(str, Enum):
    """Urgency marker carried over from linked tasks."""

    RED = "red"
    ORANGE = "orange"
    GREEN = "green"


# Fields whose change on a series member requires a scope decision
SIGNIFICANT_FIELDS = frozenset(
    {
        "title",
        "description",
        "color",
        "category",
        "location",
        "reminder",
        "reminders",
        "meeting",
        "recurrence",
    }
)

# Fields whose change bypasses the save debounce
IMMEDIATE_FIELDS = frozenset({"title", "recurrence"})


class CalendarEvent(BaseModel):
    """A calendar event: series head, standalone event, exception or virtual occurrence.

    One model covers every role. The role is read from the series fields:

    - series head: ``recurrence`` holds a rule, ``is_recurrence_base`` is set
    - virtual occurrence: ``is_virtual`` and ``parent_id`` are set, no rule
    - exception: ``recurrence_group_id`` and ``occurrence_date`` are set, no rule,
      ``is_deleted`` marks a tombstone
    """

    # Core properties
    id: str = Field(..., description="Event ID")
    title: str = Field(default="", description="Event title")
    start: datetime = Field(..., description="Start instant (UTC)")
    end: datetime = Field(..., description="End instant (UTC)")
    timezone: str = Field(default="UTC", description="IANA timezone the event was created in")

    # Opaque content fields
    description: Optional[str] = Field(default=None, description="Markdown description")
    category: Optional[str] = Field(default=None, description="User-defined category")
    location: Optional[str] = Field(default=None, description="User-defined location")
    reminder: Optional[ReminderOption] = Field(default=None, description="Legacy single reminder")
    reminders: list[ReminderOption] = Field(default_factory=list, description="Reminders")
    meeting: Optional[str] = Field(default=None, description="Meeting provider, e.g. 'zoom'")
    color: Optional[EventColor] = Field(default=DEFAULT_COLOR, description="Display color")
    urgency: Optional[Urgency] = Field(default=None, description="Urgency marker")

    # Recurrence
    recurrence: Optional[str] = Field(default=None, description="RRULE text or 'none'")
    excluded_dates: list[date] = Field(
        default_factory=list, description="Series dates removed without an exception record"
    )
    recurrence_group_id: Optional[str] = Field(
        default=None, description="Stable series identity shared by split heads and exceptions"
    )
    is_recurrence_base: bool = Field(default=False, description="Event owns the series rule")
    is_virtual: bool = Field(default=False, description="Computed occurrence, never persisted")
    parent_id: Optional[str] = Field(default=None, description="Base event ID for virtual occurrences")
    occurrence_date: Optional[date] = Field(
        default=None, description="Series date an exception overrides"
    )
    is_deleted: bool = Field(default=False, description="Tombstone marker for exceptions")

    # Session bookkeeping
    just_created: bool = Field(default=False, description="Brand-new event, cleared on first save")

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("start", "end")
    @classmethod
    def _normalize_instant(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("excluded_dates", mode="before")
    @classmethod
    def _coerce_excluded_dates(cls, value: Any) -> Any:
        """Accept ISO date-times as well as plain dates."""
        if not isinstance(value, (list, tuple)):
            return value
        coerced = []
        for item in value:
            if isinstance(item, datetime):
                item = ensure_utc(item).date()
            elif isinstance(item, str) and len(item) > 10:
                item = ensure_utc(date_parser.isoparse(item)).date()
            coerced.append(item)
        return coerced

    @model_validator(mode="after")
    def _check_span(self) -> "CalendarEvent":
        if self.end < self.start:
            raise ValueError(f"Event {self.id} ends before it starts")
        return self

    @field_serializer("start", "end", when_used="json")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat()

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def has_rule(self) -> bool:
        """True when ``recurrence`` holds something other than empty/'none'."""
        return not is_empty_recurrence(self.recurrence)

    @property
    def rule(self) -> Optional[RecurrenceRule]:
        """Parsed recurrence rule; raises RecurrenceParseError when malformed."""
        return parse_recurrence(self.recurrence)

    @property
    def series_id(self) -> str:
        """Identity of the series this event belongs to."""
        return self.recurrence_group_id or self.parent_id or self.id

    def with_changes(self, changes: Mapping[str, Any]) -> "CalendarEvent":
        """Return a validated copy with ``changes`` applied.

        Raises:
            ValueError: a change names an unknown field or yields an invalid event
        """
        unknown = set(changes) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown event field(s): {', '.join(sorted(unknown))}")
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)

    def changed_fields(self, other: "CalendarEvent") -> set[str]:
        """Names of fields whose values differ between this event and ``other``."""
        mine = self.model_dump()
        theirs = other.model_dump()
        return {name for name in mine if mine[name] != theirs.get(name)}
