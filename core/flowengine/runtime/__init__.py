"""Runtime records: per-node execution state, the run log and run history.

WorkflowRuntime lives in flowengine.runtime.workflow_runtime; it depends on
the graph package, which itself imports from here.
"""

from flowengine.runtime.execution_state import (
    ExecutionStateStore,
    NodeExecutionState,
    NodeStatus,
)
from flowengine.runtime.history import RunHistory, RunSummary
from flowengine.runtime.run_log import LogEntry, LogLevel, RunLog

__all__ = [
    "ExecutionStateStore",
    "NodeExecutionState",
    "NodeStatus",
    "LogEntry",
    "LogLevel",
    "RunLog",
    "RunHistory",
    "RunSummary",
]
