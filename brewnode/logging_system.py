# brewnode/logging_system.py
"""
Structured logging for the brewnode supervisor.

Provides:
- Console output stamped with supervisor clock time
- Optional rotating JSON file logs
- Event classification (severity and category)
- In-memory command trail of every command sent to the controller

Pure modules (registry, normalizer, config) log through
logging.getLogger(__name__); the supervisor, dispatcher and tools use
SupervisorLogger via get_logger().
"""

import asyncio
import json
import logging
import logging.handlers
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from brewnode.time.supervisor_clock import SupervisorClock

__all__ = [
    "EventSeverity",
    "EventCategory",
    "LogEntry",
    "ClockFormatter",
    "JSONFormatter",
    "SupervisorLogger",
    "configure_logging",
    "get_logger",
]

# ----------------------------------------------------------------
# Event classification
# ----------------------------------------------------------------


class EventSeverity(Enum):
    """
    Event severity levels.

    Lower number = higher severity
    """

    CRITICAL = 1  # Rig cannot be supervised
    ALERT = 2  # Immediate operator attention
    ERROR = 3  # Failed operation
    WARNING = 4  # Degraded operation (timeouts, lost connection)
    NOTICE = 5  # Normal but significant (commands)
    INFO = 6
    DEBUG = 7


class EventCategory(Enum):
    """Supervisor event categories."""

    COMMAND = "command"  # Operator commands
    TELEMETRY = "telemetry"  # Polled data and its quality
    RECONCILIATION = "reconciliation"  # Intent settle/timeout
    COMMUNICATION = "communication"  # Transport failures
    SYSTEM = "system"  # Lifecycle
    DIAGNOSTIC = "diagnostic"


LOGGING_TO_SEVERITY = {
    logging.CRITICAL: EventSeverity.CRITICAL,
    logging.ERROR: EventSeverity.ERROR,
    logging.WARNING: EventSeverity.WARNING,
    logging.INFO: EventSeverity.INFO,
    logging.DEBUG: EventSeverity.DEBUG,
}

SEVERITY_TO_LOGGING = {
    EventSeverity.CRITICAL: logging.CRITICAL,
    EventSeverity.ALERT: logging.CRITICAL,
    EventSeverity.ERROR: logging.ERROR,
    EventSeverity.WARNING: logging.WARNING,
    EventSeverity.NOTICE: logging.INFO,
    EventSeverity.INFO: logging.INFO,
    EventSeverity.DEBUG: logging.DEBUG,
}


# ----------------------------------------------------------------
# Structured log entry
# ----------------------------------------------------------------


@dataclass
class LogEntry:
    """Structured log entry for supervisor events."""

    clock_time: float  # Supervisor clock time when event occurred
    wall_time: float
    severity: EventSeverity
    category: EventCategory
    message: str

    component: str = ""
    unit: str = ""  # Equipment unit key, if any
    command_id: str = ""

    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialisation."""
        entry_dict = {
            "clock_time": self.clock_time,
            "wall_time": self.wall_time,
            "severity": self.severity.name,
            "category": self.category.value,
            "message": self.message,
        }

        if self.component:
            entry_dict["component"] = self.component
        if self.unit:
            entry_dict["unit"] = self.unit
        if self.command_id:
            entry_dict["command_id"] = self.command_id
        if self.data:
            entry_dict["data"] = self.data

        return entry_dict

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def to_human_readable(self) -> str:
        time_str = f"[T:{self.clock_time:8.2f}s]"
        severity_str = f"[{self.severity.name:8s}]"
        unit_str = f"{self.unit}:" if self.unit else ""
        return f"{time_str} {severity_str} {unit_str} {self.message}"


# ----------------------------------------------------------------
# Formatters
# ----------------------------------------------------------------


def _clock_time(clock: SupervisorClock | None, record: logging.LogRecord) -> float:
    if clock is not None:
        return clock.now()
    return record.relativeCreated / 1000.0


class ClockFormatter(logging.Formatter):
    """Format log records with a supervisor clock prefix."""

    def __init__(self, clock: SupervisorClock | None = None):
        super().__init__(
            fmt="[T:%(clock_time)8.2fs] [%(levelname)8s] %(name)s: %(message)s"
        )
        self.clock = clock

    def format(self, record: logging.LogRecord) -> str:
        record.clock_time = _clock_time(self.clock, record)
        return super().format(record)


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def __init__(self, clock: SupervisorClock | None = None, component: str = ""):
        super().__init__()
        self.clock = clock
        self.component = component

    def format(self, record: logging.LogRecord) -> str:
        entry = LogEntry(
            clock_time=_clock_time(self.clock, record),
            wall_time=record.created,
            severity=LOGGING_TO_SEVERITY.get(record.levelno, EventSeverity.INFO),
            category=getattr(record, "category", EventCategory.SYSTEM),
            message=record.getMessage(),
            component=self.component or record.name,
        )

        if record.exc_info:
            entry.data["exception"] = self.formatException(record.exc_info)

        return entry.to_json()


# ----------------------------------------------------------------
# Supervisor logger
# ----------------------------------------------------------------


class SupervisorLogger:
    """
    Logger for supervisor components.

    Wraps Python's logging with:
    - Clock-stamped console output
    - Optional rotating JSON file output
    - Structured events
    - A bounded command trail
    """

    def __init__(
        self,
        name: str,
        component: str = "",
        log_dir: Path | None = None,
        clock: SupervisorClock | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
        max_trail_entries: int = 1000,
    ):
        """
        Initialise supervisor logger.

        Args:
            name: Logger name (typically module name)
            component: Component name for context
            log_dir: Directory for log files (None = no file logging)
            clock: Clock used to stamp entries (None = process uptime)
            enable_json: Enable JSON formatted logs (requires log_dir)
            enable_console: Enable console output
            max_trail_entries: Maximum command trail entries to retain
        """
        self.name = name
        self.component = component
        self.log_dir = log_dir
        self.clock = clock

        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)

        self.logger.propagate = False
        self.logger.handlers.clear()

        if enable_console:
            self._add_console_handler()

        if enable_json and log_dir:
            self._add_json_handler()

        self.command_trail: list[LogEntry] = []
        self._trail_lock = asyncio.Lock()
        self._max_trail_entries = max_trail_entries

    def _install(self, handler: logging.Handler) -> None:
        handler.setLevel(logging.DEBUG)
        self.logger.addHandler(handler)

    def _add_console_handler(self) -> None:
        handler = logging.StreamHandler()
        handler.setFormatter(ClockFormatter(self.clock))
        self._install(handler)

    def _add_json_handler(self) -> None:
        """Add JSON file handler with rotation."""
        if not self.log_dir:
            return

        self.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = self.log_dir / f"{self.component or 'supervisor'}.json.log"

        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        handler.setFormatter(JSONFormatter(self.clock, component=self.component))
        self._install(handler)

    def _now(self) -> float:
        return self.clock.now() if self.clock is not None else 0.0

    # ----------------------------------------------------------------
    # Standard logging methods
    # ----------------------------------------------------------------

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self.logger.error(message, **kwargs)

    def critical(self, message: str, **kwargs) -> None:
        self.logger.critical(message, **kwargs)

    def exception(self, message: str, **kwargs) -> None:
        """Log exception with traceback."""
        self.logger.exception(message, **kwargs)

    # ----------------------------------------------------------------
    # Structured events
    # ----------------------------------------------------------------

    def log_event(
        self,
        severity: EventSeverity,
        category: EventCategory,
        message: str,
        **kwargs,
    ) -> LogEntry:
        """
        Log structured supervisor event.

        Args:
            severity: Event severity level
            category: Event category
            message: Event message
            **kwargs: Additional context (unit, command_id, data)

        Returns:
            LogEntry that was created
        """
        component = kwargs.pop("component", self.component)

        entry = LogEntry(
            clock_time=self._now(),
            wall_time=time.time(),
            severity=severity,
            category=category,
            message=message,
            component=component,
            **kwargs,
        )

        self.logger.log(
            SEVERITY_TO_LOGGING.get(severity, logging.INFO),
            entry.to_human_readable(),
            extra={"category": category},
        )
        return entry

    async def log_command(
        self,
        unit: str,
        desired_on: bool,
        result: str,
        command_id: str = "",
        **kwargs,
    ) -> LogEntry:
        """
        Log a command sent to the controller and append it to the trail.

        Args:
            unit: Unit key the command targeted
            desired_on: Requested state
            result: Outcome (ACKNOWLEDGED, FAILED, REFUSED)
            command_id: Intent command id, if one was created

        Returns:
            LogEntry that was created
        """
        data = kwargs.pop("data", {})
        data.update({"desired_on": desired_on, "result": result})

        severity = EventSeverity.NOTICE if result == "ACKNOWLEDGED" else EventSeverity.WARNING
        state = "on" if desired_on else "off"

        entry = self.log_event(
            severity=severity,
            category=EventCategory.COMMAND,
            message=f"Command {unit} -> {state}: {result}",
            unit=unit,
            command_id=command_id,
            data=data,
            **kwargs,
        )

        async with self._trail_lock:
            self.command_trail.append(entry)
            if len(self.command_trail) > self._max_trail_entries:
                self.command_trail = self.command_trail[-self._max_trail_entries :]

        return entry

    async def get_command_trail(
        self, limit: int = 100, unit: str | None = None
    ) -> list[LogEntry]:
        """
        Get command trail entries, most recent last.

        Args:
            limit: Maximum number of entries to return
            unit: Filter by unit key
        """
        async with self._trail_lock:
            entries = self.command_trail
            if unit:
                entries = [e for e in entries if e.unit == unit]
            return entries[-limit:]

    async def clear_command_trail(self) -> int:
        async with self._trail_lock:
            count = len(self.command_trail)
            self.command_trail.clear()
            return count


# ----------------------------------------------------------------
# Global logger factory
# ----------------------------------------------------------------

_loggers: dict[str, SupervisorLogger] = {}
_loggers_lock = threading.Lock()
_default_log_dir: Path | None = None
_default_clock: SupervisorClock | None = None


def configure_logging(
    log_dir: Path | str | None = None,
    clock: SupervisorClock | None = None,
) -> None:
    """
    Configure global logging defaults for loggers created afterwards.

    Args:
        log_dir: Directory for JSON log files
        clock: Clock used to stamp log records
    """
    global _default_log_dir, _default_clock

    if log_dir:
        _default_log_dir = Path(log_dir)
        _default_log_dir.mkdir(parents=True, exist_ok=True)
    else:
        _default_log_dir = None

    _default_clock = clock


def get_logger(name: str, component: str = "", **kwargs) -> SupervisorLogger:
    """
    Get or create a supervisor logger.

    Thread-safe logger factory.

    Args:
        name: Logger name (typically __name__)
        component: Component name for context
        **kwargs: Additional SupervisorLogger arguments

    Returns:
        SupervisorLogger instance
    """
    logger_key = f"{name}:{component}"

    with _loggers_lock:
        if logger_key not in _loggers:
            if "log_dir" not in kwargs and _default_log_dir:
                kwargs["log_dir"] = _default_log_dir
            if "clock" not in kwargs and _default_clock:
                kwargs["clock"] = _default_clock

            _loggers[logger_key] = SupervisorLogger(name, component, **kwargs)

        return _loggers[logger_key]
