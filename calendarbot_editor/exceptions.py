"""Exception hierarchy for the calendar editing engine.

Specific exception types let callers tell a malformed recurrence rule apart
from an illegal session transition or a mutation that cannot be resolved,
instead of catching a generic Exception.
"""


class CalendarEditorError(Exception):
    """Base exception for all calendar editing errors."""


class RecurrenceParseError(CalendarEditorError):
    """A recurrence rule string could not be parsed.

    Raised when:
    - FREQ is missing or empty
    - INTERVAL or COUNT is not a positive integer
    - UNTIL is not a valid RRULE date or date-time
    - UNTIL and COUNT are both present

    Expansion never lets this escape: a series with a malformed rule expands to
    its base occurrence only.
    """


class MutationResolutionError(CalendarEditorError):
    """An edit or delete request could not be turned into operations.

    Raised when:
    - The change set names a field the event model does not have
    - A this-and-following split is requested on a rule that cannot be parsed
    """


class SeriesNotFoundError(MutationResolutionError):
    """The base event owning a series occurrence was not supplied or found."""


class SessionStateError(CalendarEditorError):
    """An edit session was asked to do something its current state forbids.

    Raised when:
    - A field is written before an event is loaded or after the session closed
    - A scope is chosen while no scope decision is pending
    """


class PreviewError(CalendarEditorError):
    """A live preview was requested for an event with no committed state."""
