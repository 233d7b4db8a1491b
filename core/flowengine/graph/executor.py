"""
Workflow Executor - Runs workflow graphs.

The executor:
1. Resets execution state and the run log
2. Finds the trigger node
3. Visits nodes depth-first, passing each node's output to its successors
4. Selects branches after condition nodes
5. Returns a RunResult; node failures never escape run()

Every call to run() gets its own WorkflowRun holding the cancel flag and the
output map, so the executor itself carries no per-run state beyond a
reference to the active run.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from flowengine.config import RuntimeConfig
from flowengine.credentials import CredentialProvider
from flowengine.graph.code_sandbox import CodeSandbox
from flowengine.graph.edge import EdgeSpec
from flowengine.graph.executors import EXECUTORS, NodeExecutor, RunContext
from flowengine.graph.node import NodeKind, NodeSpec
from flowengine.graph.variables import VariableResolver, VariableStore
from flowengine.llm.image import ImageService
from flowengine.llm.litellm import LiteLLMProvider
from flowengine.llm.provider import LLMProvider
from flowengine.observability import set_trace_context
from flowengine.runtime.execution_state import ExecutionStateStore, now_ms
from flowengine.runtime.run_log import LogEntry, LogLevel, RunLog


class RunStatus:
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class RunResult:
    """Result of running a workflow."""

    run_id: str
    status: str
    started_at: int
    completed_at: int
    duration_ms: int
    outputs: dict[str, Any] = field(default_factory=dict)  # node id -> last output
    path: list[str] = field(default_factory=list)  # Node IDs in visit order
    logs: list[LogEntry] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)  # node id -> error message

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCESS


def next_edges(node: NodeSpec, output: Any, edges: list[EdgeSpec]) -> list[EdgeSpec]:
    """Edges to follow after a node succeeded, in edge-list order."""
    outgoing = [e for e in edges if e.source == node.id]
    if (
        node.kind == NodeKind.CONDITION
        and isinstance(output, dict)
        and isinstance(output.get("result"), bool)
    ):
        return [e for e in outgoing if e.matches_branch(output["result"])]
    return outgoing


class WorkflowRun:
    """
    State of one invocation of WorkflowExecutor.run().

    Holds the cancel flag, the output of every visited node and the path taken.
    """

    def __init__(
        self,
        nodes: list[NodeSpec],
        edges: list[EdgeSpec],
        ctx: RunContext,
        state: ExecutionStateStore,
        executors: Mapping[NodeKind, NodeExecutor],
        max_depth: int,
        run_id: str | None = None,
    ):
        self.run_id = run_id or uuid.uuid4().hex
        self.nodes = nodes
        self.edges = edges
        self.ctx = ctx
        self.state = state
        self.executors = executors
        self.max_depth = max_depth

        self.outputs: dict[str, Any] = {}
        self.path: list[str] = []
        self.errors: dict[str, str] = {}
        self.current_node_id: str | None = None
        self._cancel_requested = asyncio.Event()
        self.logger = logging.getLogger(__name__)

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested.is_set()

    def cancel(self) -> None:
        """Stop before the next node; the node already running completes."""
        if self.cancelled:
            return
        self._cancel_requested.set()
        node_id = self.current_node_id or "system"
        self.ctx.run_log.add(node_id, LogLevel.WARNING, "Workflow execution stopped")
        self.logger.info("⏸ Cancel requested - stopping at next node boundary")

    def _get_node(self, node_id: str) -> NodeSpec | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    async def start(self) -> str:
        """Run from the trigger; returns the run status."""
        trigger = next((n for n in self.nodes if n.kind == NodeKind.TRIGGER), None)
        if trigger is None:
            self.ctx.run_log.add("system", LogLevel.ERROR, "No trigger node found in workflow")
            return RunStatus.ERROR

        self.ctx.run_log.add(trigger.id, LogLevel.INFO, "Workflow execution started")

        # Depth-first: a node's whole subtree finishes before its next sibling starts
        pending: list[tuple[str, Any, int]] = [(trigger.id, None, 0)]
        while pending and not self.cancelled:
            node_id, previous_output, depth = pending.pop()
            successors = await self.visit(node_id, previous_output, depth)
            pending.extend(reversed(successors))

        if self.cancelled:
            return RunStatus.CANCELLED
        return RunStatus.ERROR if self.errors else RunStatus.SUCCESS

    async def visit(
        self, node_id: str, previous_output: Any, depth: int = 0
    ) -> list[tuple[str, Any, int]]:
        """Execute one node; returns the (target, input, depth) visits it schedules."""
        node = self._get_node(node_id)
        if node is None:
            self.ctx.run_log.add(
                "system", LogLevel.WARNING, f"Edge target '{node_id}' does not exist; skipped"
            )
            return []

        self.current_node_id = node.id
        self.ctx.node_id = node.id
        set_trace_context(node_id=node.id)
        self.state.mark_running(node.id)
        self.path.append(node.id)

        if depth > self.max_depth:
            message = (
                f"Maximum traversal depth of {self.max_depth} exceeded at node "
                f"'{node.id}'; the workflow probably contains a cycle"
            )
            self._fail(node, message)
            return []

        self.ctx.run_log.add(node.id, LogLevel.INFO, f"Executing node: {node.display_name}")
        start = time.time()
        try:
            output = await self.executors[node.kind].execute(node.config, previous_output, self.ctx)
        except Exception as e:
            self.logger.debug(f"Node '{node.id}' failed", exc_info=True)
            self._fail(node, getattr(e, "message", None) or str(e) or type(e).__name__, e)
            return []

        latency_ms = int((time.time() - start) * 1000)
        self.outputs[node.id] = output
        self.state.mark_success(node.id, output, latency_ms)
        self.logger.info(
            f"✓ {node.display_name} ({node.kind})",
            extra={"event": "node_complete", "node_id": node.id, "latency_ms": latency_ms},
        )

        return [(edge.target, output, depth + 1) for edge in next_edges(node, output, self.edges)]

    def _fail(self, node: NodeSpec, message: str, error: Exception | None = None) -> None:
        self.errors[node.id] = message
        self.state.mark_error(node.id, message)
        data = {"error": message, "type": type(error).__name__} if error else None
        self.ctx.run_log.add(node.id, LogLevel.ERROR, f"Execution error: {message}", data)


class WorkflowExecutor:
    """
    Executes workflow graphs.

    Example:
        executor = WorkflowExecutor(variables=VariableStore({"city": "Seoul"}))
        result = await executor.run(workflow.nodes, workflow.edges)
        executor.state.get_state("summarize").status
    """

    def __init__(
        self,
        state: ExecutionStateStore | None = None,
        run_log: RunLog | None = None,
        variables: VariableStore | None = None,
        credentials: CredentialProvider | None = None,
        chat: LLMProvider | None = None,
        images: ImageService | None = None,
        sandbox: CodeSandbox | None = None,
        http_client: httpx.AsyncClient | None = None,
        config: RuntimeConfig | None = None,
        executors: Mapping[NodeKind, NodeExecutor] | None = None,
    ):
        self.config = config or RuntimeConfig()
        self.state = state or ExecutionStateStore()
        self.run_log = run_log or RunLog()
        self.variables = variables or VariableStore()
        self.credentials = credentials or CredentialProvider(dotenv_path=self.config.dotenv_path)
        self.chat = chat or LiteLLMProvider(timeout=self.config.http_timeout)
        self.images = images or ImageService(
            client=http_client,
            timeout=self.config.http_timeout,
            poll_interval=self.config.poll_interval,
            poll_max_attempts=self.config.poll_max_attempts,
        )
        self.sandbox = sandbox or CodeSandbox(
            timeout=self.config.script_timeout, max_memory=self.config.script_max_memory
        )
        self.http_client = http_client
        self.executors = dict(executors or EXECUTORS)
        self.logger = logging.getLogger(__name__)

        self._active_run: WorkflowRun | None = None

    @property
    def is_running(self) -> bool:
        return self._active_run is not None

    def _context(self) -> RunContext:
        return RunContext(
            resolver=VariableResolver(self.variables),
            credentials=self.credentials,
            run_log=self.run_log,
            chat=self.chat,
            images=self.images,
            sandbox=self.sandbox,
            http_client=self.http_client,
            config=self.config,
        )

    async def run(
        self, nodes: list[NodeSpec], edges: list[EdgeSpec], workflow_id: str = ""
    ) -> RunResult:
        """
        Run a workflow graph to completion.

        Node failures are recorded in the state store and the run log; they
        stop only the branch below the failed node and never raise here.
        """
        run = WorkflowRun(
            nodes=nodes,
            edges=edges,
            ctx=self._context(),
            state=self.state,
            executors=self.executors,
            max_depth=self.config.max_depth,
        )
        self._active_run = run

        self.state.clear_all()
        self.run_log.clear()
        set_trace_context(run_id=run.run_id, workflow_id=workflow_id)
        self.logger.info(f"🚀 Starting workflow run {run.run_id} ({len(nodes)} nodes)")

        started_at = now_ms()
        try:
            status = await run.start()
        finally:
            if self._active_run is run:
                self._active_run = None
            set_trace_context(node_id=None)
        completed_at = now_ms()

        self.logger.info(f"Workflow run {run.run_id} finished: {status}")
        return RunResult(
            run_id=run.run_id,
            status=status,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=completed_at - started_at,
            outputs=dict(run.outputs),
            path=list(run.path),
            logs=self.run_log.entries,
            errors=dict(run.errors),
        )

    def cancel(self) -> None:
        """Request cooperative stop of the active run, if any."""
        if self._active_run is None:
            self.logger.info("Cancel requested with no active run")
            return
        self._active_run.cancel()
