"""Edit session state machine.

An ``EditSession`` covers the lifetime of "an editor is open for event X". It
owns the working copy, decides whether a change needs a scope decision, and
routes the result either to the save scheduler's debounce path or through the
mutation resolver.

States::

    IDLE -> LOADED -> EDITING -> SCOPE_DECISION_PENDING -> COMMITTED
                         ^              |                      |
                         +--------------+ (dismissed)          |
                         +-------------------------------------+ (further edits)

    CLOSED is reachable from every state; a closed session can load again.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any, Optional

from ..calendar.models import IMMEDIATE_FIELDS, SIGNIFICANT_FIELDS, CalendarEvent
from ..core.monitoring_logging import get_logger
from ..domain.mutation_resolver import MutationScopeResolver
from ..domain.operations import (
    DeleteException,
    DeleteSeries,
    EditScope,
    MutationAction,
    Operation,
    TruncateSeries,
    UpsertBase,
    UpsertException,
)
from ..domain.series_classifier import is_series_head, is_series_member
from ..exceptions import SessionStateError
from .live_preview import LivePreviewCoordinator, PreviewEndReason
from .save_scheduler import SaveScheduler

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle states of an edit session."""

    IDLE = "idle"
    LOADED = "loaded"
    EDITING = "editing"
    SCOPE_DECISION_PENDING = "scope_decision_pending"
    COMMITTED = "committed"
    CLOSED = "closed"


_ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.LOADED, SessionState.CLOSED}),
    SessionState.LOADED: frozenset(
        {
            SessionState.EDITING,
            SessionState.SCOPE_DECISION_PENDING,
            SessionState.COMMITTED,
            SessionState.CLOSED,
        }
    ),
    SessionState.EDITING: frozenset(
        {SessionState.SCOPE_DECISION_PENDING, SessionState.COMMITTED, SessionState.CLOSED}
    ),
    SessionState.SCOPE_DECISION_PENDING: frozenset(
        {SessionState.EDITING, SessionState.COMMITTED, SessionState.CLOSED}
    ),
    SessionState.COMMITTED: frozenset(
        {SessionState.EDITING, SessionState.SCOPE_DECISION_PENDING, SessionState.CLOSED}
    ),
    SessionState.CLOSED: frozenset({SessionState.LOADED}),
}

_ACTIVE_STATES = frozenset(
    {
        SessionState.LOADED,
        SessionState.EDITING,
        SessionState.SCOPE_DECISION_PENDING,
        SessionState.COMMITTED,
    }
)


class EditSession:
    """Orchestrates classification, scope resolution, previews and saving for one editor."""

    def __init__(
        self,
        session_id: str,
        scheduler: SaveScheduler,
        *,
        resolver: Optional[MutationScopeResolver] = None,
        preview: Optional[LivePreviewCoordinator] = None,
        settings: Any = None,
    ):
        """Initialize session.

        Args:
            session_id: Identifier shared with the save scheduler
            scheduler: Save scheduler issuing writes
            resolver: Mutation resolver; a default one is built from settings
            preview: Optional preview coordinator the working copy is published to
            settings: EditorSettings, mapping or settings object
        """
        self.session_id = session_id
        self.scheduler = scheduler
        self.resolver = resolver or MutationScopeResolver(settings=settings)
        self.preview = preview

        self._state = SessionState.IDLE
        self._committed: Optional[CalendarEvent] = None
        self._working: Optional[CalendarEvent] = None
        self._base: Optional[CalendarEvent] = None
        self._exceptions: list[CalendarEvent] = []
        self._pending_changes: dict[str, Any] = {}
        self._pending_action = MutationAction.EDIT
        self._deleted = False
        self._monitor = get_logger("session")
        self._remove_listener = scheduler.add_write_listener(self._on_write)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def working_copy(self) -> Optional[CalendarEvent]:
        return self._working

    @property
    def committed_event(self) -> Optional[CalendarEvent]:
        return self._committed

    @property
    def pending_changes(self) -> dict[str, Any]:
        """Series changes waiting for a scope decision."""
        return dict(self._pending_changes)

    @property
    def pending_action(self) -> MutationAction:
        return self._pending_action

    @property
    def is_series(self) -> bool:
        return self._committed is not None and is_series_member(self._committed)

    def load(
        self,
        event: CalendarEvent,
        *,
        base: Optional[CalendarEvent] = None,
        exceptions: Iterable[CalendarEvent] = (),
    ) -> None:
        """Open ``event`` for editing, closing any event already open.

        Args:
            event: Occurrence or standalone event to edit
            base: Series head when ``event`` is a virtual occurrence or exception
            exceptions: Persisted exceptions of the series
        """
        if self._state in _ACTIVE_STATES:
            self.close()

        self._committed = event
        self._working = event.model_copy()
        self._base = event if is_series_head(event) else base
        self._exceptions = list(exceptions)
        self._pending_changes = {}
        self._pending_action = MutationAction.EDIT
        self._deleted = False

        self.scheduler.bind(self.session_id, event.id)
        if self.preview is not None:
            self.preview.commit(event)
        self._transition(SessionState.LOADED, "load")

    def update_field(self, name: str, value: Any) -> None:
        """Apply a single field write to the working copy."""
        self.update_fields({name: value})

    def update_fields(self, changes: Mapping[str, Any]) -> None:
        """Apply field writes to the working copy.

        Series members with significant changes move to SCOPE_DECISION_PENDING;
        everything else takes the debounced (or immediate) save path.

        Raises:
            SessionStateError: no event is open, or it was deleted
            ValueError: the changes produce an invalid event
        """
        working = self._require_open("update fields")
        self._working = working.with_changes(changes)
        if self.preview is not None:
            self.preview.commit(self._working)

        if self._state in (SessionState.LOADED, SessionState.COMMITTED):
            self._transition(SessionState.EDITING, "field_write")

        if self.is_series:
            self._pending_action = MutationAction.EDIT
            self._pending_changes.update(changes)
            if set(changes) & SIGNIFICANT_FIELDS and self._state == SessionState.EDITING:
                self._transition(SessionState.SCOPE_DECISION_PENDING, "significant_series_change")
            return

        if set(changes) & IMMEDIATE_FIELDS:
            self.scheduler.save_now(self.session_id, self._working)
        else:
            self.scheduler.schedule_save(self.session_id, self._working)

    def confirm(self) -> None:
        """Explicit confirm: write now, or ask for a scope if series changes are pending."""
        self._save_immediately("confirm")

    def blur(self) -> None:
        """A field lost focus: bypass the debounce like confirm does."""
        self._save_immediately("blur")

    def choose_scope(self, scope: EditScope) -> list[Operation]:
        """Resolve the pending series change with ``scope`` and dispatch it.

        Returns:
            Operations handed to the save scheduler

        Raises:
            SessionStateError: no scope decision is pending
        """
        if self._state != SessionState.SCOPE_DECISION_PENDING:
            raise SessionStateError(
                f"No scope decision pending for session {self.session_id} (state={self._state.value})"
            )
        committed, _working = self._loaded("choose a scope")
        scope = EditScope(scope)
        action = self._pending_action

        ops = self.resolver.resolve(
            committed,
            self._pending_changes,
            scope,
            action,
            base=self._base,
            exceptions=self._exceptions,
        )
        self.scheduler.apply_operations(self.session_id, ops)
        self._adopt(ops, scope, action)

        self._pending_changes = {}
        self._pending_action = MutationAction.EDIT
        self._transition(SessionState.COMMITTED, f"scope_{scope.value}")
        return ops

    def dismiss_scope_prompt(self) -> None:
        """Close the scope prompt without choosing; pending changes are kept."""
        if self._state != SessionState.SCOPE_DECISION_PENDING:
            raise SessionStateError(
                f"No scope decision pending for session {self.session_id} (state={self._state.value})"
            )
        if self._pending_action == MutationAction.DELETE:
            # A dismissed delete is simply not carried out
            self._pending_action = MutationAction.EDIT
        self._transition(SessionState.EDITING, "scope_dismissed")

    def request_delete(self, scope: Optional[EditScope] = None) -> list[Operation]:
        """Delete the open event.

        Standalone events are deleted at once. For series members a scope is
        needed: without one the session waits in SCOPE_DECISION_PENDING.

        Returns:
            Dispatched operations (empty while waiting for a scope)
        """
        self._require_open("delete")
        committed, _working = self._loaded("delete")

        if not self.is_series:
            ops = self.resolver.resolve(committed, None, None, MutationAction.DELETE)
            self.scheduler.apply_operations(self.session_id, ops)
            self._deleted = True
            self._transition(SessionState.COMMITTED, "delete")
            return ops

        self._pending_action = MutationAction.DELETE
        self._transition(SessionState.SCOPE_DECISION_PENDING, "delete_requested")
        if scope is None:
            return []
        return self.choose_scope(scope)

    def show_preview(self, fields: Mapping[str, Any]) -> CalendarEvent:
        """Preview ``fields`` over the working copy without saving anything."""
        working = self._require_open("preview")
        if self.preview is None:
            raise SessionStateError(f"Session {self.session_id} has no preview coordinator")
        return self.preview.show_preview(working.id, fields)

    def clear_preview(self) -> None:
        if self.preview is not None and self._working is not None:
            self.preview.end_interaction(self._working.id, PreviewEndReason.HOVER_END)

    def close(self) -> None:
        """Tear the session down, flushing meaningful unsaved work first.

        Unscoped series changes are resolved with SINGLE scope, the narrowest
        breadth, rather than dropped.
        """
        if self._state == SessionState.CLOSED:
            return
        if self._state == SessionState.IDLE:
            self._transition(SessionState.CLOSED, "close")
            return

        if self._pending_changes and not self._deleted:
            self._pending_action = MutationAction.EDIT
            if self._state != SessionState.SCOPE_DECISION_PENDING:
                self._transition(SessionState.SCOPE_DECISION_PENDING, "close_with_pending")
            logger.debug("Resolving unscoped changes on %s with single scope", self.session_id)
            self.choose_scope(EditScope.SINGLE)
        else:
            working = None if self._deleted else self._working
            self.scheduler.teardown(self.session_id, self._committed, working)

        if self.preview is not None and self._working is not None:
            self.preview.end_interaction(self._working.id, PreviewEndReason.TEARDOWN)
            self.preview.forget(self._working.id)

        self._pending_changes = {}
        self._transition(SessionState.CLOSED, "close")

    def dispose(self) -> None:
        """Close and stop listening for scheduler writes."""
        self.close()
        self._remove_listener()

    def _save_immediately(self, reason: str) -> None:
        self._require_open(reason)
        if self._state == SessionState.SCOPE_DECISION_PENDING:
            return

        if self._pending_changes:
            if set(self._pending_changes) & SIGNIFICANT_FIELDS:
                self._transition(SessionState.SCOPE_DECISION_PENDING, f"{reason}_prompt")
            else:
                # Minor series changes never prompt; they stay on this occurrence
                self._transition(SessionState.SCOPE_DECISION_PENDING, reason)
                self.choose_scope(EditScope.SINGLE)
            return

        committed, working = self._loaded(reason)
        if self.scheduler.has_pending(self.session_id):
            self.scheduler.flush(self.session_id)
        elif working.changed_fields(committed) - {"just_created"}:
            self.scheduler.save_now(self.session_id, working)

    def _adopt(self, ops: list[Operation], scope: EditScope, action: MutationAction) -> None:
        """Fold dispatched operations back into the session's view of the series."""
        for op in ops:
            if isinstance(op, TruncateSeries):
                self._base = op.event
            elif isinstance(op, UpsertBase):
                if op.event.has_rule:
                    self._base = op.event
                elif self._base is not None and op.event.id == self._base.id:
                    self._base = None
            elif isinstance(op, UpsertException):
                self._exceptions = [ex for ex in self._exceptions if ex.id != op.event.id]
                self._exceptions.append(op.event)
            elif isinstance(op, DeleteException):
                self._exceptions = [ex for ex in self._exceptions if ex.id != op.exception_id]
            elif isinstance(op, DeleteSeries):
                self._exceptions = []

        if action == MutationAction.DELETE:
            self._deleted = True
            return

        committed, working = self._loaded("adopt resolved operations")

        adopted: Optional[CalendarEvent] = None
        for op in ops:
            if isinstance(op, (UpsertBase, UpsertException)) and op.event.id == committed.id:
                adopted = op.event
        if adopted is None and scope == EditScope.ALL:
            # The occurrence stays virtual; it already shows the shared changes
            adopted = working
        if adopted is None:
            upserts = [op.event for op in ops if isinstance(op, (UpsertBase, UpsertException))]
            adopted = upserts[-1] if upserts else working

        if adopted.id != committed.id:
            if self.preview is not None:
                self.preview.forget(committed.id)
            self.scheduler.bind(self.session_id, adopted.id)
        self._committed = adopted
        self._working = adopted.model_copy()
        if self.preview is not None:
            self.preview.commit(adopted)

    def _on_write(self, session_id: str, event: CalendarEvent) -> None:
        if session_id != self.session_id or self._working is None or event.id != self._working.id:
            return
        self._committed = event
        if self._working.just_created:
            self._working = self._working.model_copy(update={"just_created": False})
        if self._state == SessionState.EDITING:
            self._transition(SessionState.COMMITTED, "saved")

    def _require_open(self, what: str) -> CalendarEvent:
        """Return the working copy of the open event."""
        working = self._working
        if self._state not in _ACTIVE_STATES or working is None:
            raise SessionStateError(
                f"Cannot {what}: session {self.session_id} is {self._state.value}"
            )
        if self._deleted:
            raise SessionStateError(f"Cannot {what}: event in session {self.session_id} was deleted")
        return working

    def _loaded(self, what: str) -> tuple[CalendarEvent, CalendarEvent]:
        """Committed and working copies, both set from ``load`` onwards."""
        committed, working = self._committed, self._working
        if committed is None or working is None:
            raise SessionStateError(f"Cannot {what}: session {self.session_id} has no event loaded")
        return committed, working

    def _transition(self, new_state: SessionState, reason: str) -> None:
        old_state = self._state
        if new_state == old_state:
            return
        if new_state not in _ALLOWED_TRANSITIONS[old_state]:
            raise SessionStateError(
                f"Illegal transition {old_state.value} -> {new_state.value} in session {self.session_id}"
            )
        self._state = new_state
        event_id = self._working.id if self._working is not None else None
        logger.debug(
            "Session %s: %s -> %s (%s)", self.session_id, old_state.value, new_state.value, reason
        )
        self._monitor.info(
            "session.transition",
            f"{old_state.value} -> {new_state.value}",
            details={
                "session_id": self.session_id,
                "event_id": event_id,
                "from": old_state.value,
                "to": new_state.value,
                "reason": reason,
            },
        )
