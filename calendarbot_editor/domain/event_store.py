"""JSON-backed event store for calendarbot_editor with atomic writes.

A reference persistence collaborator: ``save(event)`` and ``delete(event_id)``
are all the save scheduler needs. Without a path the store is memory-only.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable
from pathlib import Path

from pydantic import ValidationError

from ..calendar.models import CalendarEvent
from .operations import (
    DeleteException,
    DeleteSeries,
    Operation,
    TruncateSeries,
    UpsertBase,
    UpsertException,
)
from .series_classifier import is_exception, is_series_head

logger = logging.getLogger(__name__)


class EventStore:
    """Persistent event store keyed by event id.

    The on-disk format is a JSON object mapping event_id -> event document
    (the model's JSON dump). Virtual occurrences are never stored.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        """Create an EventStore.

        Args:
            path: Optional path to a JSON file; None keeps events in memory only.
        """
        self._path = Path(path) if path else None
        self._lock = threading.Lock()
        self._events: dict[str, CalendarEvent] = {}

        if self._path is not None:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
            except OSError:
                logger.debug("Could not ensure directory for event store: %s", self._path.parent)
            self.load()

    def load(self) -> None:
        """Load events from disk (if the file exists), replacing memory contents.

        Malformed entries are skipped with a warning.
        """
        with self._lock:
            if self._path is None or not self._path.exists():
                self._events = {}
                return

            try:
                with self._path.open("r", encoding="utf-8") as fh:
                    data = json.load(fh)
                if not isinstance(data, dict):
                    raise ValueError("event store JSON root must be an object")  # noqa: TRY004
            except (OSError, ValueError) as exc:
                logger.warning("Failed to read event store %s: %s", self._path, exc)
                self._events = {}
                return

            events: dict[str, CalendarEvent] = {}
            for event_id, doc in data.items():
                try:
                    events[event_id] = CalendarEvent.model_validate(doc)
                except ValidationError as exc:
                    logger.warning("Skipping malformed stored event %s: %s", event_id, exc)
            self._events = events
            logger.debug("Loaded event store %s (%d events)", self._path, len(events))

    def _persist(self) -> None:
        """Persist current in-memory events to disk atomically.

        Writes to a temporary file in the same directory then replaces the target.
        """
        if self._path is None:
            return

        data = {event_id: ev.model_dump(mode="json") for event_id, ev in self._events.items()}

        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self._path.parent, delete=False, encoding="utf-8"
            ) as tf:
                tmp_path = Path(tf.name)
                json.dump(data, tf, ensure_ascii=False, indent=2)
                tf.flush()
                os.fsync(tf.fileno())
            tmp_path.replace(self._path)
        except OSError:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise

    def save(self, event: CalendarEvent) -> None:
        """Insert or replace ``event`` and persist.

        Raises:
            ValueError: event is a virtual occurrence
        """
        if event.is_virtual:
            raise ValueError(f"Refusing to store virtual occurrence {event.id}")

        with self._lock:
            previous = self._events.get(event.id)
            self._events[event.id] = event
            try:
                self._persist()
            except OSError:
                if previous is None:
                    del self._events[event.id]
                else:
                    self._events[event.id] = previous
                raise
        logger.debug("Stored event %s", event.id)

    def delete(self, event_id: str) -> bool:
        """Remove ``event_id`` and persist. Returns False if it was not stored."""
        with self._lock:
            removed = self._events.pop(event_id, None)
            if removed is None:
                return False
            self._persist()
        logger.debug("Deleted event %s", event_id)
        return True

    def apply(self, operations: Iterable[Operation]) -> None:
        """Apply resolved operations in order."""
        for op in operations:
            if isinstance(op, (UpsertBase, UpsertException)):
                self.save(op.event)
            elif isinstance(op, TruncateSeries):
                self.save(op.event)
            elif isinstance(op, DeleteException):
                self.delete(op.exception_id)
            elif isinstance(op, DeleteSeries):
                for ex_id in op.exception_ids:
                    self.delete(ex_id)
                self.delete(op.base_id)

    def get(self, event_id: str) -> CalendarEvent | None:
        with self._lock:
            return self._events.get(event_id)

    def all_events(self) -> list[CalendarEvent]:
        """All stored events ordered by start."""
        with self._lock:
            return sorted(self._events.values(), key=lambda ev: (ev.start, ev.id))

    def base_events(self) -> list[CalendarEvent]:
        """Standalone events and series heads (everything but exceptions)."""
        return [
            ev for ev in self.all_events() if is_series_head(ev) or not is_exception(ev)
        ]

    def exceptions_for(self, series_id: str) -> list[CalendarEvent]:
        """Exceptions (including tombstones) belonging to ``series_id``."""
        return [
            ev
            for ev in self.all_events()
            if is_exception(ev) and ev.recurrence_group_id == series_id
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
