"""Structured monitoring events for calendarbot_editor.

Every session state transition, resolved mutation operation, save dispatch and
preview change is emitted as a single-line JSON record with a consistent field
schema, so decisions such as "why was this delete series-scoped" can be traced
without ad hoc print debugging.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime
from typing import Any, Optional

# Global logger cache
_logger_cache: dict[str, MonitoringLogger] = {}

SCHEMA_VERSION = "1.0"

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class LogEntry:
    """Structured log entry with consistent schema."""

    def __init__(
        self,
        component: str,
        level: str,
        event: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        """Initialize log entry.

        Args:
            component: Component name (expander|resolver|scheduler|session|preview)
            level: Log level (DEBUG|INFO|WARN|ERROR|CRITICAL)
            event: Short event code (e.g., "session.transition")
            message: Human readable description
            details: Additional context data
        """
        self.timestamp = datetime.now(UTC)
        self.component = component
        self.level = level.upper()
        self.event = event
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary following the standard schema."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "component": self.component,
            "level": self.level,
            "event": self.event,
            "message": self.message,
            "details": self.details,
            "schema_version": SCHEMA_VERSION,
        }

    def to_json(self) -> str:
        """Convert to JSON string; dates and enums fall back to str()."""
        return json.dumps(self.to_dict(), separators=(",", ":"), default=str)


class MonitoringLogger:
    """Monitoring logger with structured JSON output.

    This logger does NOT have an exception() method. Inside exception
    handlers, log the traceback with the module's standard logger and then
    emit the structured event with error().
    """

    def __init__(
        self,
        name: str,
        component: str,
        level: str = "INFO",
        journald: bool = False,
    ):
        """Initialize monitoring logger.

        Args:
            name: Logger name
            component: Component identifier
            level: Default log level
            journald: Also write raw JSON lines to stdout for journald capture
        """
        self.name = name
        self.component = component

        self.logger = logging.getLogger(name)
        self.logger.setLevel(LOG_LEVELS.get(level.upper(), logging.INFO))

        if journald and not self.logger.handlers:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(self.logger.level)
            console_handler.setFormatter(logging.Formatter("%(message)s"))
            self.logger.addHandler(console_handler)

    def log(
        self,
        level: str,
        event: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> LogEntry:
        """Log a structured monitoring event.

        Args:
            level: Log level (DEBUG|INFO|WARN|ERROR|CRITICAL)
            event: Event code (e.g., "save.written")
            message: Human readable message
            details: Additional event details

        Returns:
            The LogEntry that was emitted
        """
        entry = LogEntry(
            component=self.component,
            level=level,
            event=event,
            message=message,
            details=details,
        )
        log_level = LOG_LEVELS.get(level.upper(), logging.INFO)
        self.logger.log(log_level, entry.to_json())
        return entry

    def debug(self, event: str, message: str, **kwargs: Any) -> LogEntry:
        """Log debug event."""
        return self.log("DEBUG", event, message, **kwargs)

    def info(self, event: str, message: str, **kwargs: Any) -> LogEntry:
        """Log info event."""
        return self.log("INFO", event, message, **kwargs)

    def warning(self, event: str, message: str, **kwargs: Any) -> LogEntry:
        """Log warning event."""
        return self.log("WARN", event, message, **kwargs)

    def error(self, event: str, message: str, **kwargs: Any) -> LogEntry:
        """Log error event."""
        return self.log("ERROR", event, message, **kwargs)


def configure_monitoring_logging(
    component: str,
    level: Optional[str] = None,
    journald: bool = False,
) -> MonitoringLogger:
    """Configure monitoring logging for a component.

    Args:
        component: Component name (expander|resolver|scheduler|session|preview)
        level: Log level override from environment or config
        journald: Enable raw JSON output on stdout

    Returns:
        Configured MonitoringLogger instance
    """
    log_level = level or os.environ.get("CALENDARBOT_LOG_LEVEL", "INFO")
    if os.environ.get("CALENDARBOT_DEBUG", "").lower() in ("true", "1", "yes"):
        log_level = "DEBUG"

    return MonitoringLogger(
        name=f"calendarbot_editor.monitoring.{component}",
        component=component,
        level=log_level,
        journald=journald,
    )


def get_logger(component: str) -> MonitoringLogger:
    """Get or create a monitoring logger for a component.

    Args:
        component: Component name

    Returns:
        MonitoringLogger instance
    """
    if component in _logger_cache:
        return _logger_cache[component]

    monitoring_logger = configure_monitoring_logging(component)
    _logger_cache[component] = monitoring_logger
    return monitoring_logger
