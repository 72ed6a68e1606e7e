"""Runtime settings and levelled logging for the routine maintenance tasks."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, fields
from typing import Any, NoReturn

SETTING_PREFIX = "pgroutine."
LOG_PREFIX = "pgroutine: "


class RoutineTasksError(Exception):
    """Raised when a maintenance task or a setting is invalid."""


class LogLevel(enum.IntEnum):
    """Verbosity of task logging; a message is emitted at or above the level."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3

    @classmethod
    def parse(cls, value: Any) -> "LogLevel":
        """Accept a LogLevel or its case-insensitive name."""
        if isinstance(value, LogLevel):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                pass
        choices = ", ".join(level.name.lower() for level in cls)
        raise RoutineTasksError(
            f'invalid value for parameter "log_level": {value!r} '
            f"(available values: {choices})"
        )


# name -> (kind, minimum, maximum)
_LIMITS: dict[str, tuple[type, float, float]] = {
    "session_idle_timeout": (int, 1, 86400),
    "session_max_duration": (int, 1, 604800),
    "bloat_threshold_pct": (float, 0.0, 100.0),
    "partition_pre_create_count": (int, 1, 365),
    "vacuum_bloat_threshold_pct": (float, 0.0, 100.0),
    "vacuum_mod_threshold_pct": (float, 0.0, 100.0),
}


def _to_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise RoutineTasksError(f'parameter "{name}" requires an integer value')
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise RoutineTasksError(f'parameter "{name}" requires an integer value')


def _to_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise RoutineTasksError(f'parameter "{name}" requires a numeric value')
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise RoutineTasksError(f'parameter "{name}" requires a numeric value')


def _normalise_name(name: str) -> str:
    short = name[len(SETTING_PREFIX):] if name.startswith(SETTING_PREFIX) else name
    if short not in _LIMITS and short != "log_level":
        raise RoutineTasksError(f'unrecognized configuration parameter "{name}"')
    return short


def _coerce(name: str, value: Any) -> Any:
    if name == "log_level":
        return LogLevel.parse(value)
    kind, low, high = _LIMITS[name]
    converted = _to_int(name, value) if kind is int else _to_float(name, value)
    if not low <= converted <= high:
        raise RoutineTasksError(
            f'{value!r} is outside the valid range for parameter "{name}" '
            f"({low} .. {high})"
        )
    return converted


@dataclass
class Settings:
    """Tunable thresholds shared by the maintenance tasks."""

    session_idle_timeout: int = 300
    session_max_duration: int = 3600
    bloat_threshold_pct: float = 30.0
    partition_pre_create_count: int = 3
    vacuum_bloat_threshold_pct: float = 20.0
    vacuum_mod_threshold_pct: float = 10.0
    log_level: LogLevel = LogLevel.INFO

    def __post_init__(self) -> None:
        for field in fields(self):
            object.__setattr__(
                self, field.name, _coerce(field.name, getattr(self, field.name))
            )

    def set(self, name: str, value: Any) -> None:
        """Validate and assign a setting, by short or prefixed name."""
        short = _normalise_name(name)
        setattr(self, short, _coerce(short, value))

    def get(self, name: str) -> Any:
        """Return a setting by short or prefixed name."""
        return getattr(self, _normalise_name(name))


class TaskLogger:
    """Logger that honours the configured verbosity; errors always raise."""

    def __init__(self, settings: Settings | None = None,
                 logger: logging.Logger | None = None) -> None:
        self.settings = settings if settings is not None else Settings()
        self.logger = logger if logger is not None else logging.getLogger("pgroutine")

    def _emit(self, threshold: LogLevel, level: int, message: str) -> None:
        if self.settings.log_level <= threshold:
            self.logger.log(level, LOG_PREFIX + message)

    def debug(self, message: str) -> None:
        self._emit(LogLevel.DEBUG, logging.DEBUG, message)

    def info(self, message: str) -> None:
        self._emit(LogLevel.INFO, logging.INFO, message)

    def warning(self, message: str) -> None:
        self._emit(LogLevel.WARNING, logging.WARNING, message)

    def error(self, message: str) -> NoReturn:
        """Log the message and abort the task with RoutineTasksError."""
        text = LOG_PREFIX + message
        self.logger.error(text)
        raise RoutineTasksError(text)