"""RunLog: the ordered log stream of a workflow run.

Entries are append-only and kept in emission order. Every entry is also
mirrored to the Python logger so the same stream shows up in configured log
handlers; subscribers receive entries as they are added.

Usage::

    run_log = RunLog()
    unsubscribe = run_log.subscribe(lambda entry: print(entry.message))
    run_log.add("fetch", "info", "Executing node: Fetch")
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from flowengine.runtime.execution_state import now_ms

logger = logging.getLogger(__name__)


class LogLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


PYTHON_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class LogEntry(BaseModel):
    """One line of the run log."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    node_id: str
    timestamp: int = Field(default_factory=now_ms, description="Epoch milliseconds")
    level: LogLevel
    message: str
    data: Any = None


LogSubscriber = Callable[[LogEntry], None]


class RunLog:
    """Append-only list of LogEntry with subscriber callbacks."""

    def __init__(self) -> None:
        self._entries: list[LogEntry] = []
        self._subscribers: list[LogSubscriber] = []

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def add(
        self, node_id: str, level: LogLevel | str, message: str, data: Any = None
    ) -> LogEntry:
        entry = LogEntry(node_id=node_id, level=LogLevel(level), message=message, data=data)
        self._entries.append(entry)

        logger.log(
            PYTHON_LEVELS[entry.level],
            message,
            extra={"event": f"node_{entry.level.value}", "node_id": node_id},
        )
        for subscriber in list(self._subscribers):
            subscriber(entry)
        return entry

    def subscribe(self, callback: LogSubscriber) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def clear(self) -> None:
        self._entries.clear()

    def for_node(self, node_id: str) -> list[LogEntry]:
        return [e for e in self._entries if e.node_id == node_id]

    def __len__(self) -> int:
        return len(self._entries)
