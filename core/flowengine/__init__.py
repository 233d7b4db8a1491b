"""flowengine - run node-based automation workflows.

Quick Start:
    from flowengine import WorkflowRuntime, WorkflowSpec

    workflow = WorkflowSpec.model_validate_json(open("workflow.json").read())
    result, summary = await WorkflowRuntime().run(workflow)
"""

from flowengine.errors import (
    ConfigurationError,
    EvaluationError,
    ExternalCallError,
    UnsupportedCapabilityError,
    WorkflowError,
)
from flowengine.graph import (
    CodeSandbox,
    EdgeSpec,
    NodeKind,
    NodeSpec,
    RunResult,
    VariableResolver,
    VariableStore,
    WorkflowExecutor,
    WorkflowSpec,
)
from flowengine.runtime import ExecutionStateStore, RunHistory, RunLog
from flowengine.runtime.workflow_runtime import WorkflowRuntime

__version__ = "0.1.0"

__all__ = [
    "WorkflowError",
    "ConfigurationError",
    "ExternalCallError",
    "EvaluationError",
    "UnsupportedCapabilityError",
    "NodeKind",
    "NodeSpec",
    "EdgeSpec",
    "WorkflowSpec",
    "VariableStore",
    "VariableResolver",
    "CodeSandbox",
    "WorkflowExecutor",
    "RunResult",
    "ExecutionStateStore",
    "RunLog",
    "RunHistory",
    "WorkflowRuntime",
]
