"""Trace — append-only event log for a single run."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class TraceEvent:
    level: str
    name: str
    data: dict[str, Any] = field(default_factory=dict)
    ts: float = field(default_factory=time.time)


class Trace:
    """Collects structured events and mirrors them to ``logging``.

    Info events go to the debug level so that ``-v`` shows the full event
    stream; warnings and errors keep their level.
    """

    def __init__(self) -> None:
        self.events: list[TraceEvent] = []

    def _record(self, level: str, name: str, data: dict[str, Any]) -> None:
        self.events.append(TraceEvent(level=level, name=name, data=data))
        log_level = {"warn": logging.WARNING, "error": logging.ERROR}.get(level, logging.DEBUG)
        logger.log(log_level, "%s %s", name, data)

    def info(self, name: str, **data: Any) -> None:
        self._record("info", name, data)

    def warn(self, name: str, **data: Any) -> None:
        self._record("warn", name, data)

    def error(self, name: str, **data: Any) -> None:
        self._record("error", name, data)

    def named(self, name: str) -> list[TraceEvent]:
        return [e for e in self.events if e.name == name]

    def __len__(self) -> int:
        return len(self.events)

    def __repr__(self) -> str:
        return f"Trace(events={len(self.events)})"
