"""Event sinks and user notifiers invoked at pipeline decision points."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

EVENT_LOGGER = logging.getLogger("testgate.events")
NOTIFY_LOGGER = logging.getLogger("testgate.notify")


class EventLevel(str, Enum):
    """Severity attached to a task event."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"


_LOGGING_LEVELS: dict[EventLevel, int] = {
    EventLevel.INFO: logging.INFO,
    EventLevel.WARN: logging.WARNING,
    EventLevel.ERROR: logging.ERROR,
}


def logging_level(level: EventLevel) -> int:
    """Map an :class:`EventLevel` onto a :mod:`logging` level."""
    return _LOGGING_LEVELS[level]


@dataclass(slots=True, frozen=True)
class LogEvent:
    """A single ``(task_id, level, message)`` entry."""

    task_id: str
    level: EventLevel
    message: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "level": self.level.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }


class EventSink:
    """Append-only destination for task events.

    Subclasses override :meth:`record`. Emitting never raises; a sink that
    fails to persist an event only logs the failure.
    """

    def emit(self, task_id: str, level: EventLevel, message: str) -> LogEvent:
        event = LogEvent(task_id=task_id, level=level, message=message)
        try:
            self.record(event)
        except Exception:
            EVENT_LOGGER.debug("Failed to record event for %s", task_id, exc_info=True)
        return event

    def record(self, event: LogEvent) -> None:
        raise NotImplementedError


class LoggingEventSink(EventSink):
    """Forward events to the ``testgate.events`` logger."""

    def record(self, event: LogEvent) -> None:
        EVENT_LOGGER.log(logging_level(event.level), "[%s] %s", event.task_id, event.message)


class JsonlEventSink(LoggingEventSink):
    """Log events and append them as compact JSON lines to ``path``."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def record(self, event: LogEvent) -> None:
        super().record(event)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(event.to_dict(), separators=(",", ":"), ensure_ascii=False)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")


class Notifier:
    """User-facing notification surface."""

    def info(self, message: str) -> None:
        raise NotImplementedError

    def warning(self, message: str) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Notifier that writes user messages to the ``testgate.notify`` logger."""

    def info(self, message: str) -> None:
        NOTIFY_LOGGER.info(message)

    def warning(self, message: str) -> None:
        NOTIFY_LOGGER.warning(message)


__all__ = [
    "EventLevel",
    "EventSink",
    "JsonlEventSink",
    "LogEvent",
    "LoggingEventSink",
    "LoggingNotifier",
    "Notifier",
    "logging_level",
]
