"""Event model, recurrence rule parsing and series expansion."""

from .models import CalendarEvent, EventColor, ReminderOption, Urgency
from .recurrence_expander import RecurrenceExpander, expand
from .recurrence_rule import RecurrenceFrequency, RecurrenceRule, parse_recurrence

__all__ = [
    "CalendarEvent",
    "EventColor",
    "RecurrenceExpander",
    "RecurrenceFrequency",
    "RecurrenceRule",
    "ReminderOption",
    "Urgency",
    "expand",
    "parse_recurrence",
]
