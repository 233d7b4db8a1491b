"""
Per-node execution state.

Each node moves idle -> running -> success | error within a run. The store is
written by the executor and read by whatever renders progress (the CLI, a UI).
Timestamps are epoch milliseconds.
"""

from __future__ import annotations

import time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel


def now_ms() -> int:
    return int(time.time() * 1000)


class NodeStatus(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class NodeExecutionState(BaseModel):
    """Status, result and timing of one node."""

    status: NodeStatus = NodeStatus.IDLE
    result: Any = None
    error: str | None = None
    started_at: int | None = None
    completed_at: int | None = None
    duration_ms: int | None = None


class ExecutionStateStore:
    """
    Node id -> NodeExecutionState.

    Example:
        store = ExecutionStateStore()
        store.mark_running("fetch")
        store.mark_success("fetch", {"ok": True}, duration_ms=50)
        store.get_state("fetch").status  # NodeStatus.SUCCESS
    """

    def __init__(self) -> None:
        self._states: dict[str, NodeExecutionState] = {}

    def get_state(self, node_id: str) -> NodeExecutionState:
        """Current state of a node; nodes never touched in this run are idle."""
        state = self._states.get(node_id)
        if state is None:
            return NodeExecutionState()
        return state

    def mark_running(self, node_id: str) -> None:
        self._states[node_id] = NodeExecutionState(status=NodeStatus.RUNNING, started_at=now_ms())

    def mark_success(self, node_id: str, result: Any, duration_ms: int | None = None) -> None:
        state = self._finish(node_id, NodeStatus.SUCCESS, duration_ms)
        state.result = result
        state.error = None

    def mark_error(self, node_id: str, message: str, duration_ms: int | None = None) -> None:
        state = self._finish(node_id, NodeStatus.ERROR, duration_ms)
        state.error = message

    def _finish(
        self, node_id: str, status: NodeStatus, duration_ms: int | None
    ) -> NodeExecutionState:
        state = self._states.setdefault(node_id, NodeExecutionState())
        completed = now_ms()
        state.status = status
        state.completed_at = completed
        if duration_ms is not None:
            state.duration_ms = duration_ms
        elif state.started_at is not None:
            state.duration_ms = completed - state.started_at
        else:
            state.duration_ms = None
        return state

    def clear_state(self, node_id: str) -> None:
        self._states.pop(node_id, None)

    def clear_all(self) -> None:
        self._states.clear()

    def snapshot(self) -> dict[str, NodeExecutionState]:
        """Copy of every recorded state."""
        return {node_id: state.model_copy(deep=True) for node_id, state in self._states.items()}
