"""Translate edit and delete requests into persistence operations.

Given the occurrence the user acted on, the field changes and the chosen
scope, the resolver decides which stored records change:

- SINGLE materializes (or updates) the exception for the target's date
- FOLLOWING truncates the head before the target and starts a new head there
- ALL rewrites the head and leaves per-date exceptions alone

Resolution is synchronous and side-effect free apart from structured logging.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any, Optional

from ..calendar.models import CalendarEvent
from ..calendar.recurrence_expander import RecurrenceExpander, exception_occurrence_date
from ..calendar.recurrence_rule import RecurrenceRule, parse_recurrence
from ..core.monitoring_logging import get_logger
from ..core.timezone_utils import local_date
from ..exceptions import MutationResolutionError, RecurrenceParseError, SeriesNotFoundError
from .operations import (
    DeleteException,
    DeleteSeries,
    EditScope,
    MutationAction,
    Operation,
    TruncateSeries,
    UpsertBase,
    UpsertException,
    describe_operation,
    exception_id,
    split_base_id,
)
from .series_classifier import is_exception, is_series_head, is_series_member

logger = logging.getLogger(__name__)

# Series bookkeeping is owned by the resolver and cannot be edited directly
PROTECTED_FIELDS = frozenset(
    {
        "id",
        "is_virtual",
        "parent_id",
        "recurrence_group_id",
        "is_recurrence_base",
        "occurrence_date",
        "is_deleted",
    }
)


class MutationScopeResolver:
    """Resolves (target, changes, scope, action) into an ordered operation list."""

    def __init__(self, expander: Optional[RecurrenceExpander] = None, settings: Any = None):
        self.expander = expander or RecurrenceExpander(settings)
        self._monitor = get_logger("resolver")

    def resolve(
        self,
        target: CalendarEvent,
        changes: Optional[Mapping[str, Any]],
        scope: Optional[EditScope],
        action: MutationAction = MutationAction.EDIT,
        *,
        base: Optional[CalendarEvent] = None,
        exceptions: Iterable[CalendarEvent] = (),
    ) -> list[Operation]:
        """Resolve a mutation request.

        Args:
            target: Occurrence the user acted on (head, virtual or exception)
            changes: Field name to new value; ignored for deletes
            scope: Breadth across the series; ignored for standalone events
            action: Edit or delete
            base: Series head, required unless ``target`` is the head itself
            exceptions: Persisted exceptions of the series

        Returns:
            Operations in the order they must be applied

        Raises:
            MutationResolutionError: unknown or protected fields, missing scope,
                invalid resulting event, or an unparseable rule on a split
            SeriesNotFoundError: the series head is needed but was not supplied
        """
        action = MutationAction(action)
        changes = dict(changes or {}) if action == MutationAction.EDIT else {}
        self._check_changes(target, changes)

        if not is_series_member(target):
            ops = self._resolve_standalone(target, changes, action)
            self._emit(ops, target, None, action)
            return ops

        if scope is None:
            raise MutationResolutionError(f"A scope is required to change series member {target.id}")
        scope = EditScope(scope)

        head = self._find_head(target, base)
        series_id = head.series_id if head is not None else target.series_id
        series_exceptions = [
            ex for ex in exceptions if is_exception(ex) and ex.recurrence_group_id == series_id
        ]

        if scope == EditScope.SINGLE:
            ops = self._resolve_single(target, changes, action, series_id, series_exceptions)
        else:
            if head is None:
                raise SeriesNotFoundError(
                    f"Series head for {target.id} (series {series_id}) was not supplied"
                )
            if scope == EditScope.FOLLOWING:
                ops = self._resolve_following(target, changes, action, head, series_exceptions)
            else:
                ops = self._resolve_all(target, changes, action, head, series_exceptions)

        self._emit(ops, target, scope, action)
        return ops

    # Scope branches

    def _resolve_standalone(
        self, target: CalendarEvent, changes: dict[str, Any], action: MutationAction
    ) -> list[Operation]:
        if action == MutationAction.DELETE:
            return [DeleteSeries(base_id=target.id, series_id=target.series_id)]

        updated = self._apply(target, changes)
        if updated.has_rule:
            # Attaching a rule turns the event into a series head
            updated = updated.model_copy(
                update={
                    "is_recurrence_base": True,
                    "recurrence_group_id": updated.recurrence_group_id or updated.id,
                }
            )
        return [UpsertBase(updated)]

    def _resolve_single(
        self,
        target: CalendarEvent,
        changes: dict[str, Any],
        action: MutationAction,
        series_id: str,
        exceptions: list[CalendarEvent],
    ) -> list[Operation]:
        if "recurrence" in changes:
            logger.debug("Ignoring recurrence change on single occurrence %s", target.id)
            changes = {k: v for k, v in changes.items() if k != "recurrence"}

        slot_date = self._slot_date(target)
        deleting = action == MutationAction.DELETE

        existing = target if is_exception(target) else self._exception_on(exceptions, slot_date)
        if existing is not None:
            updated = self._apply(existing, {**changes, "is_deleted": deleting or existing.is_deleted})
            return [UpsertException(updated)]

        materialized = self._apply(
            target,
            {
                **changes,
                "id": exception_id(series_id, slot_date),
                "recurrence": None,
                "excluded_dates": [],
                "recurrence_group_id": series_id,
                "is_recurrence_base": False,
                "is_virtual": False,
                "parent_id": None,
                "occurrence_date": slot_date,
                "is_deleted": deleting,
                "just_created": False,
            },
        )
        return [UpsertException(materialized)]

    def _resolve_following(
        self,
        target: CalendarEvent,
        changes: dict[str, Any],
        action: MutationAction,
        head: CalendarEvent,
        exceptions: list[CalendarEvent],
    ) -> list[Operation]:
        slot_date = self._slot_date(target)
        slot_start = self._slot_start(target, head, slot_date)

        previous = self.expander.previous_occurrence_start(head, slot_start)
        if previous is None:
            logger.debug("Following-scope change on first occurrence of %s resolves as all", head.id)
            return self._resolve_all(target, changes, action, head, exceptions)

        rule = self._head_rule(head)
        truncated = self._apply(head, {"recurrence": rule.with_until(previous).to_rrule_string()})
        ops: list[Operation] = [TruncateSeries(base_id=head.id, until=previous, event=truncated)]

        last_date = local_date(rule.until, head.timezone) if rule.until is not None else None
        for ex in sorted(exceptions, key=exception_occurrence_date):
            ex_date = exception_occurrence_date(ex)
            if ex_date < slot_date or (last_date is not None and ex_date > last_date):
                continue
            ops.append(
                DeleteException(series_id=head.series_id, occurrence_date=ex_date, event_id=ex.id)
            )

        if action == MutationAction.DELETE:
            return ops

        new_recurrence = self._continuation_rule(rule, changes, head, slot_start)
        new_head = self._apply(
            target,
            {
                **changes,
                "id": split_base_id(head.id, slot_date),
                "recurrence": new_recurrence,
                "excluded_dates": [d for d in head.excluded_dates if d >= slot_date],
                "recurrence_group_id": head.series_id,
                "is_recurrence_base": True,
                "is_virtual": False,
                "parent_id": None,
                "occurrence_date": None,
                "is_deleted": False,
                "just_created": False,
            },
        )
        ops.append(UpsertBase(new_head))
        return ops

    def _resolve_all(
        self,
        target: CalendarEvent,
        changes: dict[str, Any],
        action: MutationAction,
        head: CalendarEvent,
        exceptions: list[CalendarEvent],
    ) -> list[Operation]:
        if action == MutationAction.DELETE:
            return [
                DeleteSeries(
                    base_id=head.id,
                    series_id=head.series_id,
                    exception_ids=tuple(ex.id for ex in exceptions),
                )
            ]

        head_changes = {k: v for k, v in changes.items() if k not in ("start", "end")}
        if "start" in changes or "end" in changes:
            # Time edits made on one occurrence shift the whole series by the same amount
            moved = self._apply(target, {k: changes[k] for k in ("start", "end") if k in changes})
            head_changes["start"] = head.start + (moved.start - target.start)
            head_changes["end"] = head.end + (moved.end - target.end)

        return [UpsertBase(self._apply(head, head_changes))]

    # Helpers

    def _find_head(
        self, target: CalendarEvent, base: Optional[CalendarEvent]
    ) -> Optional[CalendarEvent]:
        if is_series_head(target):
            return target
        if base is None:
            return None
        if not is_series_head(base):
            raise SeriesNotFoundError(f"Event {base.id} does not own a recurrence rule")
        return base

    def _head_rule(self, head: CalendarEvent) -> RecurrenceRule:
        try:
            rule = head.rule
        except RecurrenceParseError as e:
            raise MutationResolutionError(f"Cannot split series {head.id}: {e}") from e
        if rule is None:
            raise SeriesNotFoundError(f"Event {head.id} does not own a recurrence rule")
        return rule

    def _continuation_rule(
        self,
        rule: RecurrenceRule,
        changes: dict[str, Any],
        head: CalendarEvent,
        slot_start: datetime,
    ) -> Optional[str]:
        """RRULE text for the head that continues the series from the target."""
        if "recurrence" in changes:
            try:
                changed = parse_recurrence(changes["recurrence"])
            except RecurrenceParseError as e:
                raise MutationResolutionError(f"Invalid recurrence change: {e}") from e
            return changed.to_rrule_string() if changed is not None else None

        if rule.count is not None:
            consumed = self.expander.count_occurrences_before(head, slot_start)
            return rule.with_count(max(rule.count - consumed, 1)).to_rrule_string()
        return rule.to_rrule_string()

    def _slot_date(self, target: CalendarEvent) -> date:
        if target.is_virtual:
            return target.occurrence_date or local_date(target.start, target.timezone)
        if is_exception(target):
            return exception_occurrence_date(target)
        return local_date(target.start, target.timezone)

    def _slot_start(self, target: CalendarEvent, head: CalendarEvent, slot_date: date) -> datetime:
        """Original series slot of ``target``, which may differ from an exception's own start."""
        if is_exception(target):
            slot = self.expander.occurrence_start_on(head, slot_date)
            if slot is not None:
                return slot
        return target.start

    @staticmethod
    def _exception_on(exceptions: list[CalendarEvent], slot_date: date) -> Optional[CalendarEvent]:
        for ex in exceptions:
            if exception_occurrence_date(ex) == slot_date:
                return ex
        return None

    @staticmethod
    def _check_changes(target: CalendarEvent, changes: dict[str, Any]) -> None:
        unknown = set(changes) - set(CalendarEvent.model_fields)
        if unknown:
            raise MutationResolutionError(
                f"Unknown field(s) in change set for {target.id}: {', '.join(sorted(unknown))}"
            )
        protected = set(changes) & PROTECTED_FIELDS
        if protected:
            raise MutationResolutionError(
                f"Series field(s) cannot be edited directly: {', '.join(sorted(protected))}"
            )

    @staticmethod
    def _apply(event: CalendarEvent, changes: Mapping[str, Any]) -> CalendarEvent:
        try:
            return event.with_changes(changes)
        except ValueError as e:
            raise MutationResolutionError(f"Invalid change for {event.id}: {e}") from e

    def _emit(
        self,
        ops: list[Operation],
        target: CalendarEvent,
        scope: Optional[EditScope],
        action: MutationAction,
    ) -> None:
        for index, op in enumerate(ops):
            details = {
                "target_id": target.id,
                "scope": scope.value if scope is not None else None,
                "action": action.value,
                "index": index,
                **describe_operation(op),
            }
            self._monitor.info(
                "mutation.operation.resolved",
                f"{type(op).__name__} resolved for {target.id}",
                details=details,
            )
        logger.debug(
            "Resolved %s on %s (scope=%s) into %d operation(s)",
            action.value,
            target.id,
            scope.value if scope is not None else None,
            len(ops),
        )


def resolve_mutation(
    target: CalendarEvent,
    changes: Optional[Mapping[str, Any]],
    scope: Optional[EditScope],
    action: MutationAction = MutationAction.EDIT,
    *,
    base: Optional[CalendarEvent] = None,
    exceptions: Iterable[CalendarEvent] = (),
    settings: Any = None,
) -> list[Operation]:
    """Resolve a mutation with a default-configured resolver."""
    return MutationScopeResolver(settings=settings).resolve(
        target, changes, scope, action, base=base, exceptions=exceptions
    )
