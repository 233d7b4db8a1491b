"""
Workflow Runtime - runs a workflow document and records it in the history.

Wraps WorkflowExecutor with the bits a caller needs around a run: loading the
document's variables into the store, building the post-run summary, and
appending it to RunHistory.
"""

import logging

from flowengine.graph.edge import WorkflowSpec
from flowengine.graph.executor import RunResult, WorkflowExecutor
from flowengine.runtime.history import RunHistory, RunSummary

logger = logging.getLogger(__name__)


class WorkflowRuntime:
    """
    Runs WorkflowSpec documents and keeps their summaries.

    Example:
        runtime = WorkflowRuntime()
        result, summary = await runtime.run(workflow)
        runtime.history.recent(5)
    """

    def __init__(
        self,
        executor: WorkflowExecutor | None = None,
        history: RunHistory | None = None,
    ):
        self.executor = executor or WorkflowExecutor()
        if history is None:
            history = RunHistory(path=self.executor.config.history_path)
        self.history = history

    async def run(self, workflow: WorkflowSpec) -> tuple[RunResult, RunSummary]:
        """Run the workflow and append its summary to the history."""
        for problem in workflow.problems():
            logger.warning(f"⚠ {workflow.name}: {problem}")

        for scope, values in workflow.variables.items():
            if scope not in ("global", "workflow"):
                continue
            for key, value in values.items():
                # Values already in the store (e.g. from --var) take precedence
                if self.executor.variables.get(scope, key) is None:
                    self.executor.variables.set(scope, key, value)

        result = await self.executor.run(workflow.nodes, workflow.edges, workflow_id=workflow.id)

        summary = RunSummary(
            name=workflow.name,
            started_at=result.started_at,
            completed_at=result.completed_at,
            status=result.status,
            duration_ms=result.duration_ms,
            logs=result.logs,
            node_count=len(workflow.nodes),
            edge_count=len(workflow.edges),
        )
        self.history.add(summary)
        logger.info(f"Recorded run of '{workflow.name}' as {summary.id} ({summary.status})")
        return result, summary

    def cancel(self) -> None:
        self.executor.cancel()
