"""Configuration management for calendarbot_editor."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SAVE_DEBOUNCE_MS = 300
DEFAULT_MAX_OCCURRENCES = 1000


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Strips quotes (both single and double) from values
        - Handles KEY=VALUE format with optional whitespace
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return result

    for raw_line in content.splitlines():
        line = raw_line.strip()

        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")

        if key:
            result[key] = val

    return result


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and dataclass-like objects.

    Args:
        config: Configuration object (dict or object with attributes)
        key: Configuration key to retrieve
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)


@dataclass
class EditorSettings:
    """Settings for the editing engine.

    Consolidates expansion and save-scheduling knobs with explicit defaults.
    """

    save_debounce_ms: int = DEFAULT_SAVE_DEBOUNCE_MS
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES
    default_timezone: str = "UTC"
    log_level: str = "INFO"
    debug: bool = False

    @property
    def save_debounce_seconds(self) -> float:
        """Debounce delay in seconds, as asyncio timers expect."""
        return self.save_debounce_ms / 1000.0

    @classmethod
    def from_settings(cls, settings: Any) -> EditorSettings:
        """Extract editor settings from a dict or settings object.

        Args:
            settings: Configuration mapping or object; None yields defaults

        Returns:
            EditorSettings with values from settings or defaults
        """
        if settings is None:
            return cls()
        return cls(
            save_debounce_ms=int(
                get_config_value(settings, "save_debounce_ms", DEFAULT_SAVE_DEBOUNCE_MS)
            ),
            max_occurrences=int(
                get_config_value(settings, "max_occurrences", DEFAULT_MAX_OCCURRENCES)
            ),
            default_timezone=get_config_value(settings, "default_timezone", "UTC"),
            log_level=get_config_value(settings, "log_level", "INFO"),
            debug=bool(get_config_value(settings, "debug", False)),
        )


class ConfigManager:
    """Manages editor configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        parsed = parse_env_file(self.env_file_path)

        set_keys = []
        for key, val in parsed.items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - CALENDARBOT_SAVE_DEBOUNCE_MS -> 'save_debounce_ms' (int)
        - CALENDARBOT_MAX_OCCURRENCES -> 'max_occurrences' (int)
        - CALENDARBOT_DEFAULT_TIMEZONE -> 'default_timezone'
        - CALENDARBOT_LOG_LEVEL -> 'log_level'
        - CALENDARBOT_DEBUG -> 'debug' (bool)

        Returns:
            Configuration dictionary accepted by EditorSettings.from_settings
        """
        cfg: dict[str, Any] = {}

        debounce = os.environ.get("CALENDARBOT_SAVE_DEBOUNCE_MS")
        if debounce:
            try:
                value = int(debounce)
                if value < 0:
                    raise ValueError(debounce)
                cfg["save_debounce_ms"] = value
            except ValueError:
                logger.warning("Invalid CALENDARBOT_SAVE_DEBOUNCE_MS=%r; ignoring", debounce)

        max_occ = os.environ.get("CALENDARBOT_MAX_OCCURRENCES")
        if max_occ:
            try:
                value = int(max_occ)
                if value < 1:
                    raise ValueError(max_occ)
                cfg["max_occurrences"] = value
            except ValueError:
                logger.warning("Invalid CALENDARBOT_MAX_OCCURRENCES=%r; ignoring", max_occ)

        default_tz = os.environ.get("CALENDARBOT_DEFAULT_TIMEZONE")
        if default_tz:
            cfg["default_timezone"] = default_tz

        log_level = os.environ.get("CALENDARBOT_LOG_LEVEL")
        if log_level:
            cfg["log_level"] = log_level.upper()

        if os.environ.get("CALENDARBOT_DEBUG", "").lower() in ("1", "true", "yes"):
            cfg["debug"] = True

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        return self.build_config_from_env()

    def load_settings(self) -> EditorSettings:
        """Load configuration and wrap it in EditorSettings."""
        return EditorSettings.from_settings(self.load_full_config())
