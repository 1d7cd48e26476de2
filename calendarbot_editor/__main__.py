"""Command-line entry for calendarbot_editor.

Provides small inspection commands for the recurrence engine:

  python -m calendarbot_editor expand --start 2024-01-01T09:00:00Z \\
      --rrule FREQ=DAILY --window-start 2024-01-01 --window-end 2024-02-01
  python -m calendarbot_editor describe --rrule "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO"
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timedelta
from typing import NoReturn, Optional

from dateutil import parser as date_parser

from . import _init_logging
from .calendar.models import CalendarEvent
from .calendar.recurrence_expander import RecurrenceExpander
from .calendar.recurrence_rule import parse_recurrence
from .core.config_manager import ConfigManager
from .core.lite_logging import configure_lite_logging
from .exceptions import CalendarEditorError


def _parse_instant(value: str) -> datetime:
    try:
        return date_parser.isoparse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid ISO 8601 datetime: {value!r}") from e


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for calendarbot_editor CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="calendarbot_editor",
        description="CalendarBot editor - recurring event expansion and inspection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m calendarbot_editor expand --start 2024-01-01T09:00:00Z --rrule FREQ=DAILY \\
      --window-start 2024-01-01 --window-end 2024-01-08
  python -m calendarbot_editor describe --rrule "FREQ=DAILY;BYDAY=MO,TU,WE,TH,FR"
        """,
    )
    parser.add_argument(
        "--log-level",
        metavar="LEVEL",
        help="Console log level (default: INFO, or from CALENDARBOT_LOG_LEVEL env var)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    expand_parser = subparsers.add_parser("expand", help="List occurrences of a series in a window")
    expand_parser.add_argument("--start", type=_parse_instant, required=True, help="Series start")
    expand_parser.add_argument(
        "--end", type=_parse_instant, help="Occurrence end (default: start + 1 hour)"
    )
    expand_parser.add_argument("--rrule", default=None, help="RRULE text, e.g. FREQ=WEEKLY")
    expand_parser.add_argument("--timezone", default=None, help="IANA timezone of the series")
    expand_parser.add_argument("--title", default="", help="Event title")
    expand_parser.add_argument("--id", dest="event_id", default="series", help="Base event id")
    expand_parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="DATE",
        help="Series date to exclude (repeatable, YYYY-MM-DD)",
    )
    expand_parser.add_argument(
        "--window-start", type=_parse_instant, required=True, help="Inclusive window start"
    )
    expand_parser.add_argument(
        "--window-end", type=_parse_instant, required=True, help="Exclusive window end"
    )

    describe_parser = subparsers.add_parser("describe", help="Parse and describe an RRULE")
    describe_parser.add_argument("--rrule", required=True, help="RRULE text")

    return parser


def _cmd_expand(args: argparse.Namespace, settings: object) -> int:
    end = args.end or args.start + timedelta(hours=1)
    base = CalendarEvent(
        id=args.event_id,
        title=args.title,
        start=args.start,
        end=end,
        timezone=args.timezone or getattr(settings, "default_timezone", "UTC"),
        recurrence=args.rrule,
        is_recurrence_base=bool(args.rrule),
        excluded_dates=args.exclude,
    )
    expander = RecurrenceExpander(settings)
    occurrences = expander.expand(base, args.window_start, args.window_end)
    payload = [
        {
            "id": ev.id,
            "title": ev.title,
            "start": ev.start.isoformat(),
            "end": ev.end.isoformat(),
            "is_virtual": ev.is_virtual,
        }
        for ev in occurrences
    ]
    print(json.dumps(payload, indent=2))
    return 0


def _cmd_describe(args: argparse.Namespace) -> int:
    rule = parse_recurrence(args.rrule)
    if rule is None:
        print(json.dumps({"recurrence": None, "label": "Does not repeat"}))
        return 0
    print(
        json.dumps(
            {
                "frequency": rule.frequency.value,
                "interval": rule.interval,
                "by_day": list(rule.by_day),
                "by_month_day": rule.by_month_day,
                "until": rule.until.isoformat() if rule.until else None,
                "count": rule.count,
                "rrule": rule.to_rrule_string(),
                "label": rule.describe(),
            },
            indent=2,
        )
    )
    return 0


def run(argv: Optional[list[str]] = None) -> int:
    """Run a CLI command and return its exit code."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    settings = ConfigManager().load_settings()
    _init_logging(args.log_level or settings.log_level)
    configure_lite_logging(debug_mode=settings.debug)

    try:
        if args.command == "expand":
            return _cmd_expand(args, settings)
        return _cmd_describe(args)
    except CalendarEditorError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except ValueError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 2


def main() -> NoReturn:
    """Run the calendarbot_editor CLI."""
    sys.exit(run())


if __name__ == "__main__":
    main()
