"""
Run history - summaries of finished workflow runs.

Newest first, capped at MAX_HISTORY entries (the oldest are evicted). When
constructed with a path, the history is loaded from and saved to a JSON file
after every change.
"""

from __future__ import annotations

import json
import logging
import random
import string
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from flowengine.runtime.execution_state import now_ms
from flowengine.runtime.run_log import LogEntry

logger = logging.getLogger(__name__)

MAX_HISTORY = 100


def new_history_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"history-{now_ms()}-{suffix}"


class RunSummary(BaseModel):
    """Post-run summary of one workflow execution."""

    id: str = Field(default_factory=new_history_id)
    name: str
    started_at: int
    completed_at: int | None = None
    status: str = Field(description="success, error or cancelled")
    duration_ms: int | None = None
    logs: list[LogEntry] = Field(default_factory=list)
    node_count: int = 0
    edge_count: int = 0


class RunHistory:
    """
    Capped, newest-first list of RunSummary.

    Example:
        history = RunHistory(path=Path("~/.flowengine/history.json").expanduser())
        history.add(summary)
        history.recent(5)
    """

    def __init__(self, path: Path | None = None, max_entries: int = MAX_HISTORY):
        self.path = path
        self.max_entries = max_entries
        self._entries: list[RunSummary] = []
        if path is not None:
            self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning(f"⚠ Could not read run history from {self.path}: {e}")
            return
        if not isinstance(data, list):
            logger.warning(f"⚠ Could not read run history from {self.path}: expected a JSON list")
            return

        entries = []
        for index, item in enumerate(data):
            try:
                entries.append(RunSummary.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    f"⚠ Skipping run history entry {index} in {self.path}: "
                    f"{e.error_count()} validation error(s)"
                )
        self._entries = entries[: self.max_entries]

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [entry.model_dump(mode="json") for entry in self._entries]
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    @property
    def entries(self) -> list[RunSummary]:
        return list(self._entries)

    def add(self, summary: RunSummary) -> str:
        """Insert a summary at the front; returns its id."""
        self._entries = [summary, *self._entries][: self.max_entries]
        self._save()
        return summary.id

    def get(self, history_id: str) -> RunSummary | None:
        for entry in self._entries:
            if entry.id == history_id:
                return entry
        return None

    def delete(self, history_id: str) -> None:
        self._entries = [e for e in self._entries if e.id != history_id]
        self._save()

    def clear(self) -> None:
        self._entries = []
        self._save()

    def recent(self, limit: int = 10) -> list[RunSummary]:
        """Most recently started runs first."""
        return sorted(self._entries, key=lambda e: e.started_at, reverse=True)[:limit]

    def __len__(self) -> int:
        return len(self._entries)
