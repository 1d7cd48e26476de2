"""
Central logging configuration for calendarbot_editor.

Keeps third-party debug chatter quiet while letting the editing engine's own
modules log at DEBUG when troubleshooting scope resolution or save timing.
"""

import logging
import os
from typing import Optional

EDITOR_MODULES = [
    "calendarbot_editor",
    "calendarbot_editor.calendar.recurrence_expander",
    "calendarbot_editor.calendar.recurrence_rule",
    "calendarbot_editor.domain.mutation_resolver",
    "calendarbot_editor.domain.event_store",
    "calendarbot_editor.editing.save_scheduler",
    "calendarbot_editor.editing.edit_session",
    "calendarbot_editor.editing.live_preview",
]


def configure_lite_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for calendarbot_editor.

    Args:
        debug_mode: Whether to enable debug logging for calendarbot_editor modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        CALENDARBOT_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        CALENDARBOT_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("CALENDARBOT_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("CALENDARBOT_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    logger_config: dict[str, int] = {
        "asyncio": logging.WARNING,
        "dateutil": logging.WARNING,
    }

    editor_level = logging.DEBUG if final_debug else logging.INFO
    for module in EDITOR_MODULES:
        logger_config[module] = editor_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for calendarbot_editor modules.")
    else:
        root_logger.info("Production logging configuration applied.")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["calendarbot_editor", "asyncio"]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
