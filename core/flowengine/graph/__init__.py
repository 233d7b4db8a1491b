"""Graph structures: Nodes, Edges, Variables and Execution."""

from flowengine.graph.node import (
    AnyNodeConfig,
    ConditionConfig,
    HTTPConfig,
    ImageConfig,
    LLMConfig,
    NodeConfig,
    NodeKind,
    NodeSpec,
    ScriptConfig,
    TerminatorConfig,
    TriggerConfig,
)
from flowengine.graph.edge import EdgeSpec, WorkflowSpec
from flowengine.graph.variables import VariableResolver, VariableStore, has_variables
from flowengine.graph.code_sandbox import CodeSandbox
from flowengine.graph.executors import EXECUTORS, NodeExecutor, RunContext, get_executor
from flowengine.graph.executor import RunResult, RunStatus, WorkflowExecutor, WorkflowRun

__all__ = [
    # Node
    "NodeKind",
    "NodeSpec",
    "NodeConfig",
    "AnyNodeConfig",
    "TriggerConfig",
    "LLMConfig",
    "HTTPConfig",
    "ScriptConfig",
    "ConditionConfig",
    "ImageConfig",
    "TerminatorConfig",
    # Edge
    "EdgeSpec",
    "WorkflowSpec",
    # Variables
    "VariableStore",
    "VariableResolver",
    "has_variables",
    # Sandbox
    "CodeSandbox",
    # Executors
    "NodeExecutor",
    "RunContext",
    "EXECUTORS",
    "get_executor",
    # Executor
    "WorkflowExecutor",
    "WorkflowRun",
    "RunResult",
    "RunStatus",
]
