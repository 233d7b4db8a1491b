"""
Edges and the workflow document.

An edge leaving a condition node carries a branch: "true" (or unset) is
followed when the condition held, "false" when it did not. Edges leaving any
other node kind are all followed, in document order.
"""

from collections import Counter
from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, Field

from flowengine.graph.node import NodeKind, NodeSpec


class EdgeSpec(BaseModel):
    """
    Specification for an edge between nodes.

    Examples:
        # Plain sequencing
        EdgeSpec(id="fetch-to-parse", source="fetch", target="parse")

        # False branch of a condition
        EdgeSpec(id="check-to-retry", source="check", target="retry", branch="false")
    """

    id: str
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    branch: str | None = Field(
        default=None,
        description="'true' or 'false' on edges leaving a condition node; unset means 'true'",
    )

    model_config = {"extra": "allow"}

    def matches_branch(self, result: bool) -> bool:
        """Whether this edge belongs to the branch a condition selected."""
        if result:
            return self.branch is None or self.branch == "true"
        return self.branch == "false"


class WorkflowSpec(BaseModel):
    """
    A workflow document: nodes, edges and the initial variable scopes.

        WorkflowSpec(
            id="wf-1",
            name="Summarize feed",
            nodes=[...],
            edges=[...],
            variables={"global": {"feed": "https://example.com/rss"}},
        )
    """

    id: str
    name: str = "Untitled workflow"
    description: str = ""
    nodes: list[NodeSpec] = Field(default_factory=list)
    edges: list[EdgeSpec] = Field(default_factory=list)
    variables: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Initial variable scopes: {'global': {...}, 'workflow': {...}}",
    )

    model_config = {"extra": "allow"}

    def get_node(self, node_id: str) -> NodeSpec | None:
        return next((node for node in self.nodes if node.id == node_id), None)

    def triggers(self) -> list[NodeSpec]:
        return [node for node in self.nodes if node.kind == NodeKind.TRIGGER]

    def get_trigger(self) -> NodeSpec | None:
        """First trigger node in document order; further triggers are ignored."""
        return next(iter(self.triggers()), None)

    def get_outgoing_edges(self, node_id: str) -> list[EdgeSpec]:
        """Edges leaving ``node_id``, in document order."""
        return [edge for edge in self.edges if edge.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[EdgeSpec]:
        return [edge for edge in self.edges if edge.target == node_id]

    def reachable_from(self, node_id: str) -> set[str]:
        """Ids of every node some edge path leads to from ``node_id``, itself included."""
        seen = {node_id}
        frontier = [node_id]
        while frontier:
            for edge in self.get_outgoing_edges(frontier.pop()):
                if edge.target not in seen:
                    seen.add(edge.target)
                    frontier.append(edge.target)
        return seen

    def problems(self) -> list[str]:
        """List structural problems. Nothing here raises; the executor tolerates all of them."""
        return [
            *self._check_node_ids(),
            *self._check_triggers(),
            *self._check_edges(),
            *self._check_reachability(),
            *self._check_variable_scopes(),
        ]

    def _check_node_ids(self) -> Iterator[str]:
        counts = Counter(node.id for node in self.nodes)
        for node_id, count in counts.items():
            if count > 1:
                yield f"Duplicate node ID: '{node_id}'"

    def _check_triggers(self) -> Iterator[str]:
        triggers = self.triggers()
        if not triggers:
            yield "Workflow has no trigger node"
        elif len(triggers) > 1:
            ignored = ", ".join(f"'{node.id}'" for node in triggers[1:])
            yield f"Multiple trigger nodes; only '{triggers[0].id}' is used ({ignored})"

    def _check_edges(self) -> Iterator[str]:
        known = {node.id for node in self.nodes}
        for edge in self.edges:
            for role, node_id in (("source", edge.source), ("target", edge.target)):
                if node_id not in known:
                    yield f"Edge '{edge.id}' references missing {role} '{node_id}'"
            if edge.branch not in (None, "true", "false"):
                yield f"Edge '{edge.id}' has invalid branch '{edge.branch}'"

    def _check_reachability(self) -> Iterator[str]:
        trigger = self.get_trigger()
        if trigger is None:
            return
        reachable = self.reachable_from(trigger.id)
        for node in self.nodes:
            if node.id not in reachable and node.kind != NodeKind.TRIGGER:
                yield f"Node '{node.id}' is unreachable from trigger"

    def _check_variable_scopes(self) -> Iterator[str]:
        for scope in self.variables:
            if scope not in ("global", "workflow"):
                yield f"Unknown variable scope '{scope}' (expected global or workflow)"
