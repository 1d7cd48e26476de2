"""Debounced, per-session save scheduling.

Each edit session owns one slot: the event it is bound to, the latest unsaved
copy and at most one armed timer. Re-arming always cancels the previous timer,
so intermediate copies are dropped and only the last one is written.

Writes are fire-and-forget. The persistence collaborator may return an
awaitable; it is tracked as a task so failures are logged, never retried and
never lost silently.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from ..calendar.models import DEFAULT_COLOR, CalendarEvent
from ..core.config_manager import EditorSettings
from ..core.monitoring_logging import get_logger
from ..domain.operations import (
    DeleteException,
    DeleteSeries,
    Operation,
    TruncateSeries,
    UpsertBase,
    UpsertException,
    describe_operation,
)

logger = logging.getLogger(__name__)

WriteListener = Callable[[str, CalendarEvent], None]


class Persistence(Protocol):
    """Storage collaborator; either method may return an awaitable."""

    def save(self, event: CalendarEvent) -> Any: ...

    def delete(self, event_id: str) -> Any: ...


def has_meaningful_content(event: CalendarEvent) -> bool:
    """True when an event carries anything worth keeping.

    Anything with a non-empty title or description, a category, a reminder,
    a meeting, a recurrence rule or a non-default color qualifies. A brand-new
    event with none of these is an abandoned creation.
    """
    if event.title.strip():
        return True
    if event.description and event.description.strip():
        return True
    if event.category or event.reminder or event.reminders or event.meeting:
        return True
    if event.has_rule:
        return True
    return event.color is not None and event.color != DEFAULT_COLOR


@dataclass
class _SaveSlot:
    """Per-session scheduling state; one timer handle at most."""

    active_event_id: Optional[str] = None
    pending: Optional[CalendarEvent] = None
    timer: Optional[asyncio.TimerHandle] = None


class SaveScheduler:
    """Owns debounce and flush timing for every open edit session."""

    def __init__(
        self,
        persistence: Persistence,
        *,
        delay_seconds: Optional[float] = None,
        settings: Any = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """Initialize scheduler.

        Args:
            persistence: Collaborator receiving ``save``/``delete`` calls
            delay_seconds: Debounce delay; defaults to the configured value (0.3s)
            settings: EditorSettings, mapping or settings object
            loop: Event loop for timers; defaults to the running loop
        """
        config = EditorSettings.from_settings(settings)
        self.delay = delay_seconds if delay_seconds is not None else config.save_debounce_seconds
        self._persistence = persistence
        self._loop = loop
        self._slots: dict[str, _SaveSlot] = {}
        self._tasks: set[asyncio.Future[Any]] = set()
        self._write_listeners: list[WriteListener] = []
        self._monitor = get_logger("scheduler")

    def add_write_listener(self, listener: WriteListener) -> Callable[[], None]:
        """Call ``listener(session_id, event)`` after each session write is dispatched."""
        self._write_listeners.append(listener)

        def remove() -> None:
            if listener in self._write_listeners:
                self._write_listeners.remove(listener)

        return remove

    def bind(self, session_id: str, event_id: str) -> None:
        """Point ``session_id`` at ``event_id``.

        A pending write for the previously bound event is flushed first, so
        switching events never drops the last edit.
        """
        slot = self._slot(session_id)
        if slot.active_event_id is not None and slot.active_event_id != event_id:
            if slot.pending is not None:
                logger.debug(
                    "Flushing %s before rebinding session %s to %s",
                    slot.active_event_id,
                    session_id,
                    event_id,
                )
                self.flush(session_id)
        slot.active_event_id = event_id

    def schedule_save(self, session_id: str, event: CalendarEvent) -> None:
        """Arm (or re-arm) the debounce timer with ``event`` as the copy to write."""
        slot = self._slot(session_id)
        if slot.active_event_id != event.id:
            self.bind(session_id, event.id)

        self._cancel_timer(slot)
        slot.pending = event
        slot.timer = self._get_loop().call_later(
            self.delay, self._on_timer, session_id, event.id
        )

    def flush(self, session_id: str) -> Optional[CalendarEvent]:
        """Cancel the timer and write the pending copy now.

        Returns:
            The event handed to persistence, or None if nothing was pending
        """
        slot = self._slots.get(session_id)
        if slot is None:
            return None
        self._cancel_timer(slot)
        pending, slot.pending = slot.pending, None
        if pending is None:
            return None
        return self._write(session_id, pending)

    def save_now(self, session_id: str, event: CalendarEvent) -> Optional[CalendarEvent]:
        """Replace the pending copy with ``event`` and write it, bypassing the debounce."""
        slot = self._slot(session_id)
        if slot.active_event_id != event.id:
            self.bind(session_id, event.id)
        slot.pending = event
        return self.flush(session_id)

    def discard(self, session_id: str) -> Optional[CalendarEvent]:
        """Cancel the timer and drop the pending copy without writing it."""
        slot = self._slots.get(session_id)
        if slot is None:
            return None
        self._cancel_timer(slot)
        pending, slot.pending = slot.pending, None
        return pending

    def teardown(
        self,
        session_id: str,
        last_committed: Optional[CalendarEvent],
        working_copy: Optional[CalendarEvent] = None,
    ) -> bool:
        """Close out a session: flush meaningful unsaved work, discard the rest.

        Args:
            session_id: Session being torn down
            last_committed: Last state known to be saved (None for a new event)
            working_copy: Current working copy; defaults to the pending copy

        Returns:
            True if a write was issued
        """
        slot = self._slots.get(session_id)
        candidate = working_copy
        if candidate is None and slot is not None:
            candidate = slot.pending

        wrote = False
        if candidate is not None and _differs(candidate, last_committed):
            if has_meaningful_content(candidate):
                self.save_now(session_id, candidate)
                wrote = True
            else:
                self._monitor.info(
                    "save.discarded",
                    f"Discarding empty working copy of {candidate.id}",
                    details={"session_id": session_id, "event_id": candidate.id},
                )
                self.discard(session_id)
        else:
            self.discard(session_id)

        self._slots.pop(session_id, None)
        return wrote

    def apply_operations(self, session_id: str, operations: Iterable[Operation]) -> None:
        """Dispatch resolved operations immediately, in order.

        Any debounced copy for the session is dropped; the operations supersede it.
        """
        self.discard(session_id)
        for op in operations:
            logger.debug("Dispatching %s for session %s", type(op).__name__, session_id)
            if isinstance(op, (UpsertBase, UpsertException, TruncateSeries)):
                self._dispatch_save(op.event)
            elif isinstance(op, DeleteException):
                self._dispatch_delete(op.exception_id)
            elif isinstance(op, DeleteSeries):
                for ex_id in op.exception_ids:
                    self._dispatch_delete(ex_id)
                self._dispatch_delete(op.base_id)
            else:
                raise TypeError(f"Unknown operation: {op!r}")
            self._monitor.info(
                "save.written",
                f"{type(op).__name__} dispatched",
                details={"session_id": session_id, **describe_operation(op)},
            )

    def pending_event(self, session_id: str) -> Optional[CalendarEvent]:
        slot = self._slots.get(session_id)
        return slot.pending if slot is not None else None

    def has_pending(self, session_id: str) -> bool:
        return self.pending_event(session_id) is not None

    def bound_event_id(self, session_id: str) -> Optional[str]:
        slot = self._slots.get(session_id)
        return slot.active_event_id if slot is not None else None

    async def drain(self) -> None:
        """Wait for every outstanding persistence task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Flush every session and wait for outstanding writes."""
        for session_id in list(self._slots):
            self.flush(session_id)
        self._slots.clear()
        await self.drain()

    def _on_timer(self, session_id: str, event_id: str) -> None:
        slot = self._slots.get(session_id)
        if slot is None:
            return
        slot.timer = None
        pending = slot.pending
        if slot.active_event_id != event_id or pending is None or pending.id != event_id:
            self._monitor.debug(
                "save.stale_timer",
                f"Ignoring stale save timer for {event_id}",
                details={
                    "session_id": session_id,
                    "timer_event_id": event_id,
                    "active_event_id": slot.active_event_id,
                },
            )
            return
        slot.pending = None
        self._write(session_id, pending)

    def _write(self, session_id: str, event: CalendarEvent) -> Optional[CalendarEvent]:
        if event.is_virtual:
            logger.warning("Refusing to persist virtual occurrence %s", event.id)
            self._monitor.warning(
                "save.rejected",
                f"Virtual occurrence {event.id} cannot be saved",
                details={"session_id": session_id, "event_id": event.id},
            )
            return None

        if event.just_created:
            event = event.model_copy(update={"just_created": False})

        if not self._dispatch_save(event):
            return None

        self._monitor.info(
            "save.written",
            f"Save dispatched for {event.id}",
            details={"session_id": session_id, "event_id": event.id},
        )
        for listener in list(self._write_listeners):
            try:
                listener(session_id, event)
            except Exception:
                logger.exception("Write listener failed for %s", event.id)
        return event

    def _dispatch_save(self, event: CalendarEvent) -> bool:
        try:
            result = self._persistence.save(event)
        except Exception:
            logger.exception("Persistence save failed for %s", event.id)
            return False
        self._track(result, "save", event.id)
        return True

    def _dispatch_delete(self, event_id: str) -> None:
        try:
            result = self._persistence.delete(event_id)
        except Exception:
            logger.exception("Persistence delete failed for %s", event_id)
            return
        self._track(result, "delete", event_id)

    def _track(self, result: Any, kind: str, event_id: str) -> None:
        if not inspect.isawaitable(result):
            return
        future = asyncio.ensure_future(result, loop=self._get_loop())
        self._tasks.add(future)
        future.add_done_callback(functools.partial(self._on_write_done, kind, event_id))

    def _on_write_done(self, kind: str, event_id: str, future: asyncio.Future[Any]) -> None:
        self._tasks.discard(future)
        if future.cancelled():
            logger.debug("Persistence %s for %s was cancelled", kind, event_id)
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Persistence %s failed for %s: %s", kind, event_id, exc)
            self._monitor.error(
                "save.failed",
                f"Persistence {kind} failed for {event_id}",
                details={"event_id": event_id, "kind": kind, "error": str(exc)},
            )

    def _slot(self, session_id: str) -> _SaveSlot:
        slot = self._slots.get(session_id)
        if slot is None:
            slot = _SaveSlot()
            self._slots[session_id] = slot
        return slot

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    @staticmethod
    def _cancel_timer(slot: _SaveSlot) -> None:
        if slot.timer is not None:
            slot.timer.cancel()
            slot.timer = None


def _differs(candidate: CalendarEvent, committed: Optional[CalendarEvent]) -> bool:
    if committed is None or committed.id != candidate.id:
        return True
    return bool(candidate.changed_fields(committed) - {"just_created"})
