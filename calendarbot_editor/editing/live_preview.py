"""Ephemeral display overrides layered over committed event state.

Previews let a hover over a color swatch or a picker option repaint the event
immediately without touching the save path. The coordinator holds no
reference to persistence, so nothing shown here can ever be written.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, Optional

from ..calendar.models import CalendarEvent
from ..core.monitoring_logging import get_logger
from ..exceptions import PreviewError

logger = logging.getLogger(__name__)

# Observers receive (event_id, event to display)
PreviewObserver = Callable[[str, CalendarEvent], None]


class PreviewEndReason(str, Enum):
    """Interactions that end a preview automatically."""

    HOVER_END = "hover_end"
    PICKER_CLOSED = "picker_closed"
    TEARDOWN = "teardown"


class LivePreviewCoordinator:
    """Tracks at most one preview per event id and notifies observers."""

    def __init__(self) -> None:
        self._committed: dict[str, CalendarEvent] = {}
        self._previews: dict[str, CalendarEvent] = {}
        self._overrides: dict[str, dict[str, Any]] = {}
        self._observers: list[PreviewObserver] = []
        self._monitor = get_logger("preview")

    def subscribe(self, observer: PreviewObserver) -> Callable[[], None]:
        """Register ``observer``; returns a callable that unregisters it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def commit(self, event: CalendarEvent) -> None:
        """Record ``event`` as the committed baseline previews are layered on.

        An active preview for the same id is kept and re-layered on top.
        """
        self._committed[event.id] = event
        if event.id in self._previews:
            try:
                self._previews[event.id] = event.with_changes(self._overrides[event.id])
            except ValueError:
                logger.debug("Dropping preview for %s that no longer fits the committed event", event.id)
                self._previews.pop(event.id, None)
                self._overrides.pop(event.id, None)
                self._notify(event.id, event)
                return
            self._notify(event.id, self._previews[event.id])
        else:
            self._notify(event.id, event)

    def forget(self, event_id: str) -> None:
        """Drop all state for ``event_id`` without notifying observers."""
        self._committed.pop(event_id, None)
        self._previews.pop(event_id, None)
        self._overrides.pop(event_id, None)

    def show_preview(self, event_id: str, fields: Mapping[str, Any]) -> CalendarEvent:
        """Display ``fields`` over the committed state of ``event_id``.

        The new view replaces any previous preview for the id as a whole;
        observers never see the old and new overrides mixed.

        Raises:
            PreviewError: nothing is committed for ``event_id`` or the fields are invalid
        """
        committed = self._committed.get(event_id)
        if committed is None:
            raise PreviewError(f"No committed state for event {event_id}")
        try:
            view = committed.with_changes(fields)
        except ValueError as e:
            raise PreviewError(f"Invalid preview for {event_id}: {e}") from e

        self._previews[event_id] = view
        self._overrides[event_id] = dict(fields)
        self._monitor.debug(
            "preview.shown",
            f"Preview shown for {event_id}",
            details={"event_id": event_id, "fields": sorted(fields)},
        )
        self._notify(event_id, view)
        return view

    def clear_preview(self, event_id: str) -> Optional[CalendarEvent]:
        """Revert ``event_id`` to its committed state. No-op without a preview."""
        if self._previews.pop(event_id, None) is None:
            return self._committed.get(event_id)
        self._overrides.pop(event_id, None)

        committed = self._committed.get(event_id)
        self._monitor.debug(
            "preview.cleared", f"Preview cleared for {event_id}", details={"event_id": event_id}
        )
        if committed is not None:
            self._notify(event_id, committed)
        return committed

    def end_interaction(self, event_id: str, reason: PreviewEndReason) -> None:
        """Clear the preview because a hover, picker or session ended."""
        logger.debug("Ending preview for %s: %s", event_id, PreviewEndReason(reason).value)
        self.clear_preview(event_id)

    def current(self, event_id: str) -> Optional[CalendarEvent]:
        """Event as it should be displayed right now (preview if any, else committed)."""
        return self._previews.get(event_id) or self._committed.get(event_id)

    def committed(self, event_id: str) -> Optional[CalendarEvent]:
        return self._committed.get(event_id)

    def has_preview(self, event_id: str) -> bool:
        return event_id in self._previews

    def _notify(self, event_id: str, event: CalendarEvent) -> None:
        for observer in list(self._observers):
            try:
                observer(event_id, event)
            except Exception:
                logger.exception("Preview observer failed for %s", event_id)
