"""Test cases for the editor exception hierarchy."""
import pytest

from calendarbot_editor.exceptions import (
    CalendarEditorError,
    MutationResolutionError,
    PreviewError,
    RecurrenceParseError,
    SeriesNotFoundError,
    SessionStateError,
)


@pytest.mark.unit
class TestExceptionHierarchy:
    """Test the exception hierarchy is properly structured."""

    def test_all_exceptions_inherit_from_base(self):
        """All custom exceptions should inherit from CalendarEditorError."""
        for exc_class in (
            RecurrenceParseError,
            MutationResolutionError,
            SeriesNotFoundError,
            SessionStateError,
            PreviewError,
        ):
            assert issubclass(exc_class, CalendarEditorError)
            assert issubclass(exc_class, Exception)

    def test_series_not_found_is_a_resolution_error(self):
        """Missing series heads are caught by resolution error handlers."""
        assert issubclass(SeriesNotFoundError, MutationResolutionError)

    def test_exception_messages_are_preserved(self):
        """Exception messages should be preserved."""
        assert str(SessionStateError("closed")) == "closed"

    def test_exceptions_can_be_raised_and_caught(self):
        """Exceptions can be raised and caught through the base class."""
        with pytest.raises(CalendarEditorError):
            raise PreviewError("no committed state")

        with pytest.raises(MutationResolutionError):
            raise SeriesNotFoundError("head missing")
