"""Clock and timezone helpers for calendarbot_editor."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via CALENDARBOT_TEST_TIME environment variable.
    Format: ISO 8601 datetime string (e.g., "2024-01-10T09:00:00Z")
    """
    test_time = os.environ.get("CALENDARBOT_TEST_TIME")
    if test_time:
        try:
            from dateutil import parser as date_parser

            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is not None:
                return dt.astimezone(datetime.UTC)
            # Assume naive datetime is already UTC
            return dt.replace(tzinfo=datetime.UTC)
        except (ValueError, OverflowError) as e:
            logger.warning("Failed to parse CALENDARBOT_TEST_TIME=%r: %s", test_time, e)

    return datetime.datetime.now(datetime.UTC)


def ensure_utc(dt: datetime.datetime) -> datetime.datetime:
    """Normalize a datetime to aware UTC; naive values are read as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.UTC)
    return dt.astimezone(datetime.UTC)


def resolve_zone(tz_name: str | None, fallback: str = DEFAULT_TIMEZONE) -> zoneinfo.ZoneInfo:
    """Return a ZoneInfo for ``tz_name``, falling back when it is unknown.

    Args:
        tz_name: IANA timezone identifier (e.g., "America/Los_Angeles")
        fallback: Identifier used when ``tz_name`` is empty or invalid

    Returns:
        ZoneInfo instance
    """
    if tz_name:
        try:
            return zoneinfo.ZoneInfo(tz_name)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError):
            logger.warning("Invalid timezone %r, falling back to %r", tz_name, fallback)
    return zoneinfo.ZoneInfo(fallback)


def to_zone(dt: datetime.datetime, tz_name: str | None) -> datetime.datetime:
    """Convert a datetime to wall-clock time in ``tz_name``."""
    return ensure_utc(dt).astimezone(resolve_zone(tz_name))


def local_date(dt: datetime.datetime, tz_name: str | None) -> datetime.date:
    """Return the calendar date of ``dt`` as seen in ``tz_name``."""
    return to_zone(dt, tz_name).date()
