"""RRULE parsing for editable events.

Recurrence text is parsed once, at the boundary, into a ``RecurrenceRule``.
Everything downstream switches on ``RecurrenceRule.frequency`` rather than
searching the raw string.
"""

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..exceptions import RecurrenceParseError

logger = logging.getLogger(__name__)

WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")
WEEKDAY_NAMES = {
    "MO": "Monday",
    "TU": "Tuesday",
    "WE": "Wednesday",
    "TH": "Thursday",
    "FR": "Friday",
    "SA": "Saturday",
    "SU": "Sunday",
}

# Keys the structured variants can represent; anything else is kept as CUSTOM
_STRUCTURED_KEYS = frozenset({"FREQ", "INTERVAL", "BYDAY", "BYMONTHDAY", "UNTIL", "COUNT"})
_STRUCTURED_FREQS = frozenset({"DAILY", "WEEKLY", "MONTHLY", "YEARLY"})

# Longest length of each month, leap years included
_MONTH_MAX_DAYS = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


class RecurrenceFrequency(str, Enum):
    """Cadence variants understood by the expander."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    CUSTOM = "CUSTOM"


class RecurrenceRule(BaseModel):
    """Parsed recurrence rule.

    ``BIWEEKLY`` is a weekly rule with an interval of two. ``CUSTOM`` keeps the
    original text in ``raw`` and is expanded by python-dateutil directly.
    """

    frequency: RecurrenceFrequency
    interval: int = Field(default=1, ge=1)
    by_day: tuple[str, ...] = ()
    by_month_day: Optional[int] = None
    until: Optional[datetime] = None
    count: Optional[int] = Field(default=None, ge=1)
    raw: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_bounds(self) -> "RecurrenceRule":
        if self.until is not None and self.count is not None:
            raise ValueError("UNTIL and COUNT are mutually exclusive")
        if self.frequency == RecurrenceFrequency.CUSTOM and not self.raw:
            raise ValueError("CUSTOM rules must carry their raw text")
        return self

    @property
    def is_bounded(self) -> bool:
        return self.until is not None or self.count is not None

    @property
    def base_frequency(self) -> str:
        """RRULE FREQ value for the structured variants."""
        if self.frequency == RecurrenceFrequency.BIWEEKLY:
            return "WEEKLY"
        return self.frequency.value

    def to_rrule_string(self) -> str:
        """Serialize back to RRULE text (without the ``RRULE:`` prefix)."""
        if self.frequency == RecurrenceFrequency.CUSTOM:
            return _rewrite_bounds(self.raw or "", self.until, self.count)

        parts = [f"FREQ={self.base_frequency}"]
        if self.interval != 1:
            parts.append(f"INTERVAL={self.interval}")
        if self.by_day:
            parts.append(f"BYDAY={','.join(self.by_day)}")
        if self.by_month_day is not None:
            parts.append(f"BYMONTHDAY={self.by_month_day}")
        if self.until is not None:
            parts.append(f"UNTIL={format_until(self.until)}")
        if self.count is not None:
            parts.append(f"COUNT={self.count}")
        return ";".join(parts)

    def with_until(self, until: datetime) -> "RecurrenceRule":
        """Copy bounded by ``until``; any COUNT bound is dropped."""
        return self.model_copy(update={"until": _as_utc(until), "count": None})

    def with_count(self, count: int) -> "RecurrenceRule":
        """Copy bounded by ``count``; any UNTIL bound is dropped."""
        if count < 1:
            raise ValueError(f"COUNT must be positive, got {count}")
        return self.model_copy(update={"until": None, "count": count})

    def without_bounds(self) -> "RecurrenceRule":
        return self.model_copy(update={"until": None, "count": None})

    def describe(self) -> str:
        """Short human-readable label, e.g. "Every weekday"."""
        days = set(self.by_day)
        if self.frequency == RecurrenceFrequency.DAILY:
            if days == {"MO", "TU", "WE", "TH", "FR"}:
                return "Every weekday"
            if days == {"SA", "SU"}:
                return "Every weekend"
            return "Daily" if self.interval == 1 else f"Every {self.interval} days"
        if self.frequency in (RecurrenceFrequency.WEEKLY, RecurrenceFrequency.BIWEEKLY):
            prefix = {1: "Weekly", 2: "Every 2 weeks"}.get(self.interval, f"Every {self.interval} weeks")
            if self.by_day:
                names = ", ".join(WEEKDAY_NAMES[d] for d in self.by_day)
                return f"{prefix} on {names}"
            return prefix
        if self.frequency == RecurrenceFrequency.MONTHLY:
            if self.by_month_day is not None:
                return f"Monthly on day {self.by_month_day}"
            return "Monthly"
        if self.frequency == RecurrenceFrequency.YEARLY:
            return "Yearly"
        return "Custom"


def is_empty_recurrence(text: Optional[str]) -> bool:
    """True for ``None``, blank text and the literal ``"none"``."""
    if text is None:
        return True
    stripped = text.strip()
    return not stripped or stripped.lower() == "none"


def format_until(until: datetime) -> str:
    """Format an UNTIL bound as an RRULE UTC date-time."""
    return _as_utc(until).strftime("%Y%m%dT%H%M%SZ")


def parse_until(value: str) -> datetime:
    """Parse an RRULE UNTIL value.

    A bare date (``YYYYMMDD``) is inclusive of the whole day, so it becomes
    23:59:59 UTC. Date-times without a ``Z`` suffix are read as UTC.

    Raises:
        RecurrenceParseError: value is not an RRULE date or date-time
    """
    text = value.strip().upper()
    try:
        if len(text) == 8:
            day = datetime.strptime(text, "%Y%m%d")
            return day.replace(hour=23, minute=59, second=59, tzinfo=UTC)
        return datetime.strptime(text.rstrip("Z"), "%Y%m%dT%H%M%S").replace(tzinfo=UTC)
    except ValueError as e:
        raise RecurrenceParseError(f"Invalid UNTIL value: {value}") from e


def parse_recurrence(text: Optional[str]) -> Optional[RecurrenceRule]:
    """Parse RRULE text into a ``RecurrenceRule``.

    Args:
        text: RRULE text, optionally prefixed with ``RRULE:``

    Returns:
        Parsed rule, or None for empty text and ``"none"``

    Raises:
        RecurrenceParseError: text is present but malformed
    """
    if text is None or is_empty_recurrence(text):
        return None

    body = text.strip()
    if body.upper().startswith("RRULE:"):
        body = body[len("RRULE:") :]

    params: dict[str, str] = {}
    for part in body.split(";"):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise RecurrenceParseError(f"Invalid RRULE component {part!r} in {text!r}")
        key, value = part.split("=", 1)
        params[key.strip().upper()] = value.strip()

    freq = params.get("FREQ", "").upper()
    if not freq:
        raise RecurrenceParseError(f"RRULE missing required FREQ parameter: {text!r}")

    interval = _positive_int(params, "INTERVAL", text) or 1
    count = _positive_int(params, "COUNT", text)
    until = parse_until(params["UNTIL"]) if "UNTIL" in params else None
    if until is not None and count is not None:
        raise RecurrenceParseError(f"RRULE has both UNTIL and COUNT: {text!r}")
    _check_month_days(params, text)

    by_day: tuple[str, ...] = ()
    if "BYDAY" in params:
        by_day = tuple(d.strip().upper() for d in params["BYDAY"].split(",") if d.strip())

    custom = (
        freq not in _STRUCTURED_FREQS
        or bool(set(params) - _STRUCTURED_KEYS)
        or any(d not in WEEKDAY_CODES for d in by_day)
    )

    by_month_day: Optional[int] = None
    if not custom and "BYMONTHDAY" in params:
        try:
            by_month_day = int(params["BYMONTHDAY"])
        except ValueError:
            custom = True
        else:
            if not 1 <= by_month_day <= 31:
                custom = True
                by_month_day = None

    if custom:
        logger.debug("Keeping RRULE as custom: %s", body)
        return RecurrenceRule(
            frequency=RecurrenceFrequency.CUSTOM, until=until, count=count, raw=body
        )

    frequency = RecurrenceFrequency(freq)
    if frequency == RecurrenceFrequency.WEEKLY and interval == 2:
        frequency = RecurrenceFrequency.BIWEEKLY

    return RecurrenceRule(
        frequency=frequency,
        interval=interval,
        by_day=by_day,
        by_month_day=by_month_day,
        until=until,
        count=count,
    )


def _positive_int(params: dict[str, str], key: str, text: str) -> Optional[int]:
    if key not in params:
        return None
    try:
        value = int(params[key])
    except ValueError as e:
        raise RecurrenceParseError(f"{key} must be an integer in {text!r}") from e
    if value < 1:
        raise RecurrenceParseError(f"{key} must be positive in {text!r}")
    return value


def _int_list(params: dict[str, str], key: str, text: str) -> list[int]:
    if key not in params:
        return []
    try:
        return [int(v) for v in params[key].split(",") if v.strip()]
    except ValueError as e:
        raise RecurrenceParseError(f"{key} must be a list of integers in {text!r}") from e


def _check_month_days(params: dict[str, str], text: str) -> None:
    """Reject BYMONTH/BYMONTHDAY filters that no calendar date satisfies.

    python-dateutil keeps searching such rules until ``datetime.MAXYEAR``.
    """
    months = _int_list(params, "BYMONTH", text)
    month_days = _int_list(params, "BYMONTHDAY", text)
    if any(not 1 <= m <= 12 for m in months):
        raise RecurrenceParseError(f"BYMONTH out of range in {text!r}")
    if any(not 1 <= abs(d) <= 31 for d in month_days):
        raise RecurrenceParseError(f"BYMONTHDAY out of range in {text!r}")
    if months and month_days:
        lengths = [_MONTH_MAX_DAYS[m - 1] for m in months]
        if not any(abs(d) <= n for d in month_days for n in lengths):
            raise RecurrenceParseError(f"No month has the BYMONTHDAY requested in {text!r}")


def _rewrite_bounds(raw: str, until: Optional[datetime], count: Optional[int]) -> str:
    parts = [
        p
        for p in raw.split(";")
        if p.strip() and p.split("=", 1)[0].strip().upper() not in ("UNTIL", "COUNT")
    ]
    if until is not None:
        parts.append(f"UNTIL={format_until(until)}")
    if count is not None:
        parts.append(f"COUNT={count}")
    return ";".join(parts)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)
