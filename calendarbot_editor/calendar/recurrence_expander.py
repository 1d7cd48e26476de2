"""Recurrence expansion for editable event series.

Turns a series head plus its persisted exceptions into the occurrences that
fall inside a time window. Expansion is pure: it performs no I/O, keeps no
state between calls and never raises for a malformed rule.
"""

# ruff: noqa: I001
from collections.abc import Iterable, Iterator
from datetime import UTC, date, datetime, time
import logging
from typing import Any, Optional

from dateutil.rrule import DAILY, MONTHLY, WEEKLY, YEARLY, rrule, rrulebase, rrulestr, weekday
from dateutil.rrule import FR, MO, SA, SU, TH, TU, WE

from ..core.config_manager import EditorSettings
from ..core.monitoring_logging import get_logger
from ..core.timezone_utils import ensure_utc, local_date, resolve_zone
from ..exceptions import RecurrenceParseError
from .models import CalendarEvent
from .recurrence_rule import RecurrenceFrequency, RecurrenceRule

logger = logging.getLogger(__name__)

_FREQUENCIES = {
    "DAILY": DAILY,
    "WEEKLY": WEEKLY,
    "MONTHLY": MONTHLY,
    "YEARLY": YEARLY,
}

_WEEKDAYS: dict[str, weekday] = {
    "MO": MO,
    "TU": TU,
    "WE": WE,
    "TH": TH,
    "FR": FR,
    "SA": SA,
    "SU": SU,
}


def virtual_occurrence_id(base_id: str, start: datetime) -> str:
    """Deterministic ID of the virtual occurrence starting at ``start``."""
    return f"{base_id}_{ensure_utc(start).strftime('%Y%m%dT%H%M%S')}"


def exception_occurrence_date(event: CalendarEvent) -> date:
    """Series date an exception overrides, falling back to its own start date."""
    if event.occurrence_date is not None:
        return event.occurrence_date
    return local_date(event.start, event.timezone)


class RecurrenceExpander:
    """Expands series heads into windowed occurrence lists.

    Candidate dates come from python-dateutil, evaluated in the event's own
    timezone so wall-clock time survives DST transitions. Emitted instants are
    UTC.
    """

    def __init__(self, settings: Any = None):
        """Initialize expander.

        Args:
            settings: EditorSettings, mapping or settings object; None for defaults
        """
        config = EditorSettings.from_settings(settings)
        self.max_occurrences = config.max_occurrences
        self._monitor = get_logger("expander")

    def expand(
        self,
        base: CalendarEvent,
        window_start: datetime,
        window_end: datetime,
        exceptions: Iterable[CalendarEvent] = (),
    ) -> list[CalendarEvent]:
        """Return the occurrences of ``base`` starting in ``[window_start, window_end)``.

        Args:
            base: Series head (an event without a rule expands to itself)
            window_start: Inclusive window start
            window_end: Exclusive window end
            exceptions: Persisted exceptions; those of other series are ignored

        Returns:
            Occurrences sorted ascending by start
        """
        occurrences = list(self.iter_occurrences(base, window_start, window_end, exceptions))
        occurrences.sort(key=lambda ev: (ev.start, ev.id))
        return occurrences

    def iter_occurrences(
        self,
        base: CalendarEvent,
        window_start: datetime,
        window_end: datetime,
        exceptions: Iterable[CalendarEvent] = (),
    ) -> Iterator[CalendarEvent]:
        """Lazily yield occurrences in slot order.

        A tombstone exception or an ``excluded_dates`` entry removes its date,
        a content exception replaces it, and every other slot becomes a
        virtual occurrence copied from the base.
        """
        ws = ensure_utc(window_start)
        we = ensure_utc(window_end)
        if we <= ws:
            return

        overrides = self._index_exceptions(base, exceptions)
        excluded = set(base.excluded_dates)
        yielded = 0

        for slot in self._slots_from(base, ws):
            if slot >= we:
                break
            if yielded >= self.max_occurrences:
                logger.warning(
                    "Expansion of %s capped at %d occurrences", base.id, self.max_occurrences
                )
                break

            slot_date = local_date(slot, base.timezone)
            if slot_date in excluded:
                continue

            override = overrides.get(slot_date)
            if override is not None:
                if override.is_deleted:
                    continue
                if ws <= override.start < we:
                    yielded += 1
                    yield override
                continue

            yielded += 1
            if slot == base.start:
                yield base
            else:
                yield self._virtual_occurrence(base, slot, slot_date)

    def previous_occurrence_start(
        self, base: CalendarEvent, before: datetime
    ) -> Optional[datetime]:
        """Start of the last series slot strictly before ``before``.

        Returns None when ``before`` is at or before the first slot.
        """
        before = ensure_utc(before)
        if base.start >= before:
            return None
        rule_set = self._build_rule(base)
        if rule_set is None:
            return base.start
        zone = resolve_zone(base.timezone)
        found = rule_set.before(before.astimezone(zone), inc=False)
        if found is None:
            return base.start
        return max(ensure_utc(found), base.start)

    def count_occurrences_before(self, base: CalendarEvent, before: datetime) -> int:
        """Number of series slots (including the base start) strictly before ``before``."""
        count = 0
        for slot in self._slots_from(base, base.start):
            if slot >= ensure_utc(before):
                break
            count += 1
        return count

    def occurrence_start_on(self, base: CalendarEvent, day: date) -> Optional[datetime]:
        """Start of the series slot on local date ``day``, if the rule has one."""
        zone = resolve_zone(base.timezone)
        day_start = datetime.combine(day, time.min, tzinfo=zone)
        for slot in self._slots_from(base, ensure_utc(day_start)):
            if local_date(slot, base.timezone) == day:
                return slot
            break
        return None

    def _slots_from(self, base: CalendarEvent, after: datetime) -> Iterator[datetime]:
        """Yield distinct UTC slot starts at or after ``after``, ascending."""
        base_start = base.start
        rule_set = self._build_rule(base)
        pending_base = base_start >= after

        if rule_set is not None:
            zone = resolve_zone(base.timezone)
            last: Optional[datetime] = None
            for local_start in rule_set.xafter(after.astimezone(zone), inc=True):
                slot = ensure_utc(local_start)
                if pending_base and base_start <= slot:
                    pending_base = False
                    if base_start < slot:
                        yield base_start
                        last = base_start
                if slot == last:
                    continue
                last = slot
                yield slot

        if pending_base:
            yield base_start

    def _build_rule(self, base: CalendarEvent) -> Optional[rrulebase]:
        """Build the dateutil rule for ``base``; None when it has no usable rule."""
        if not base.has_rule:
            return None
        try:
            rule = base.rule
            if rule is None:
                return None
            return build_dateutil_rule(rule, base.start.astimezone(resolve_zone(base.timezone)))
        except (RecurrenceParseError, ValueError, TypeError) as e:
            logger.warning("Ignoring malformed recurrence %r on %s: %s", base.recurrence, base.id, e)
            self._monitor.warning(
                "expansion.rule_invalid",
                "Malformed recurrence rule, expanding base occurrence only",
                details={"event_id": base.id, "recurrence": base.recurrence, "error": str(e)},
            )
            return None

    def _index_exceptions(
        self, base: CalendarEvent, exceptions: Iterable[CalendarEvent]
    ) -> dict[date, CalendarEvent]:
        series_id = base.series_id
        index: dict[date, CalendarEvent] = {}
        for ev in exceptions:
            if ev.is_virtual or ev.id == base.id or ev.has_rule:
                continue
            if ev.recurrence_group_id != series_id:
                continue
            index[exception_occurrence_date(ev)] = ev
        return index

    def _virtual_occurrence(
        self, base: CalendarEvent, slot: datetime, slot_date: date
    ) -> CalendarEvent:
        return base.model_copy(
            update={
                "id": virtual_occurrence_id(base.id, slot),
                "start": slot,
                "end": slot + base.duration,
                "recurrence": None,
                "excluded_dates": [],
                "recurrence_group_id": base.series_id,
                "is_recurrence_base": False,
                "is_virtual": True,
                "parent_id": base.id,
                "occurrence_date": slot_date,
                "just_created": False,
            }
        )


def build_dateutil_rule(rule: RecurrenceRule, dtstart: datetime) -> rrulebase:
    """Translate a parsed rule into a python-dateutil rule anchored at ``dtstart``.

    Raises:
        ValueError: dateutil rejects the rule (CUSTOM text it cannot read)
    """
    if rule.frequency == RecurrenceFrequency.CUSTOM:
        return rrulestr(rule.to_rrule_string(), dtstart=dtstart)

    kwargs: dict[str, Any] = {
        "dtstart": dtstart,
        "interval": rule.interval,
    }
    if rule.by_day:
        kwargs["byweekday"] = [_WEEKDAYS[code] for code in rule.by_day]
    if rule.by_month_day is not None:
        kwargs["bymonthday"] = rule.by_month_day
    if rule.until is not None:
        kwargs["until"] = rule.until.astimezone(UTC)
    if rule.count is not None:
        kwargs["count"] = rule.count
    return rrule(_FREQUENCIES[rule.base_frequency], **kwargs)


_default_expander: Optional[RecurrenceExpander] = None


def get_expander(settings: Any = None) -> RecurrenceExpander:
    """Return a shared expander, or a fresh one when settings are given."""
    global _default_expander
    if settings is not None:
        return RecurrenceExpander(settings)
    if _default_expander is None:
        _default_expander = RecurrenceExpander()
    return _default_expander


def expand(
    base: CalendarEvent,
    window_start: datetime,
    window_end: datetime,
    exceptions: Iterable[CalendarEvent] = (),
    settings: Any = None,
) -> list[CalendarEvent]:
    """Expand ``base`` over ``[window_start, window_end)``.

    Convenience wrapper around ``RecurrenceExpander.expand``.
    """
    return get_expander(settings).expand(base, window_start, window_end, exceptions)


