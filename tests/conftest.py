"""Shared fixtures for calendarbot_editor tests."""

import asyncio
from collections.abc import Generator
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import pytest

from calendarbot_editor.calendar.models import CalendarEvent


def pytest_configure(config: Any) -> None:
    """Register markers used across the suite."""
    config.addinivalue_line("markers", "unit: fast, isolated tests of a single module")
    config.addinivalue_line("markers", "integration: end-to-end editing scenarios")


class RecordingPersistence:
    """Persistence collaborator that records every call in order."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []

    def save(self, event: CalendarEvent) -> None:
        self.calls.append(("save", event))

    def delete(self, event_id: str) -> None:
        self.calls.append(("delete", event_id))

    @property
    def saved(self) -> list[CalendarEvent]:
        return [payload for kind, payload in self.calls if kind == "save"]

    @property
    def deleted(self) -> list[str]:
        return [payload for kind, payload in self.calls if kind == "delete"]


class AsyncRecordingPersistence(RecordingPersistence):
    """Persistence collaborator whose methods return coroutines."""

    def __init__(self, fail_on_save: bool = False) -> None:
        super().__init__()
        self.fail_on_save = fail_on_save
        self.completed: list[str] = []

    async def _finish_save(self, event: CalendarEvent) -> None:
        await asyncio.sleep(0)
        if self.fail_on_save:
            raise RuntimeError("storage unavailable")
        self.completed.append(event.id)

    def save(self, event: CalendarEvent) -> Any:  # type: ignore[override]
        self.calls.append(("save", event))
        return self._finish_save(event)


@pytest.fixture
def simple_settings() -> SimpleNamespace:
    """Lightweight settings object; short debounce keeps timer tests fast."""
    return SimpleNamespace(
        save_debounce_ms=20,
        max_occurrences=500,
        default_timezone="UTC",
        log_level="INFO",
        debug=False,
    )


@pytest.fixture
def persistence() -> RecordingPersistence:
    return RecordingPersistence()


@pytest.fixture
def async_persistence() -> AsyncRecordingPersistence:
    return AsyncRecordingPersistence()


@pytest.fixture
def failing_persistence() -> AsyncRecordingPersistence:
    return AsyncRecordingPersistence(fail_on_save=True)


@pytest.fixture
def standup() -> CalendarEvent:
    """Daily 09:00 UTC standup series starting 2024-01-01."""
    return CalendarEvent(
        id="standup",
        title="Standup",
        start=datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
        end=datetime(2024, 1, 1, 9, 15, tzinfo=timezone.utc),
        recurrence="FREQ=DAILY",
        recurrence_group_id="standup-group",
        is_recurrence_base=True,
    )


@pytest.fixture
def lunch() -> CalendarEvent:
    """Standalone, non-recurring event."""
    return CalendarEvent(
        id="lunch",
        title="Lunch",
        start=datetime(2024, 1, 3, 12, 0, tzinfo=timezone.utc),
        end=datetime(2024, 1, 3, 13, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def january() -> tuple[datetime, datetime]:
    return (
        datetime(2024, 1, 1, tzinfo=timezone.utc),
        datetime(2024, 2, 1, tzinfo=timezone.utc),
    )


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear editor environment variables so host settings never leak into tests."""
    for name in (
        "CALENDARBOT_TEST_TIME",
        "CALENDARBOT_DEBUG",
        "CALENDARBOT_LOG_LEVEL",
        "CALENDARBOT_SAVE_DEBOUNCE_MS",
        "CALENDARBOT_MAX_OCCURRENCES",
        "CALENDARBOT_DEFAULT_TIMEZONE",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
