"""Tests for WorkflowSpec validation, RunHistory and WorkflowRuntime."""

import json

import pytest

from flowengine.config import RuntimeConfig
from flowengine.graph.edge import EdgeSpec, WorkflowSpec
from flowengine.graph.executor import WorkflowExecutor
from flowengine.graph.node import NodeSpec
from flowengine.runtime.history import RunHistory, RunSummary, new_history_id
from flowengine.runtime.workflow_runtime import WorkflowRuntime


def workflow(**overrides) -> WorkflowSpec:
    data = {
        "id": "wf-1",
        "name": "Greeting",
        "nodes": [
            {"id": "start", "kind": "trigger"},
            {"id": "greet", "kind": "script", "config": {"code": "return 'hi';"}},
            {"id": "end", "kind": "terminator"},
        ],
        "edges": [
            {"id": "e1", "source": "start", "target": "greet"},
            {"id": "e2", "source": "greet", "target": "end"},
        ],
    }
    data.update(overrides)
    return WorkflowSpec.model_validate(data)


def summary(name: str, started_at: int) -> RunSummary:
    return RunSummary(name=name, started_at=started_at, status="success")


# ---------------------------------------------------------------------------
# WorkflowSpec
# ---------------------------------------------------------------------------


class TestWorkflowSpec:
    def test_valid_document(self):
        wf = workflow()
        assert wf.problems() == []
        assert wf.get_trigger().id == "start"
        assert [e.id for e in wf.get_outgoing_edges("start")] == ["e1"]
        assert [e.id for e in wf.get_incoming_edges("end")] == ["e2"]

    def test_structural_problems_are_reported(self):
        wf = workflow(
            nodes=[
                {"id": "a", "kind": "script", "config": {"code": "return 1;"}},
                {"id": "a", "kind": "terminator"},
                {"id": "lonely", "kind": "terminator"},
            ],
            edges=[{"id": "e1", "source": "a", "target": "ghost", "branch": "maybe"}],
            variables={"session": {"x": 1}},
        )
        problems = wf.problems()
        assert "Duplicate node ID: 'a'" in problems
        assert "Workflow has no trigger node" in problems
        assert "Edge 'e1' references missing target 'ghost'" in problems
        assert "Edge 'e1' has invalid branch 'maybe'" in problems
        assert any("Unknown variable scope 'session'" in p for p in problems)

    def test_unreachable_and_extra_triggers(self):
        wf = workflow(
            nodes=[
                {"id": "t1", "kind": "trigger"},
                {"id": "t2", "kind": "trigger"},
                {"id": "orphan", "kind": "terminator"},
            ],
            edges=[],
        )
        problems = wf.problems()
        assert "Multiple trigger nodes; only 't1' is used ('t2')" in problems
        assert "Node 'orphan' is unreachable from trigger" in problems

    def test_problems_leaves_pydantic_validate_alone(self):
        with pytest.warns(DeprecationWarning):
            wf = WorkflowSpec.validate({"id": "wf", "name": "legacy"})
        assert isinstance(wf, WorkflowSpec)
        assert wf.problems() == ["Workflow has no trigger node"]

    def test_edge_branch_matching(self):
        plain = EdgeSpec(id="e", source="c", target="x")
        false_edge = EdgeSpec(id="f", source="c", target="y", branch="false")
        assert plain.matches_branch(True) and not plain.matches_branch(False)
        assert false_edge.matches_branch(False) and not false_edge.matches_branch(True)

    def test_document_round_trip_through_json(self):
        wf = workflow()
        again = WorkflowSpec.model_validate_json(wf.model_dump_json())
        assert isinstance(again.nodes[1], NodeSpec)
        assert again.nodes[1].config.code == "return 'hi';"


# ---------------------------------------------------------------------------
# RunHistory
# ---------------------------------------------------------------------------


class TestRunHistory:
    def test_history_ids(self):
        first, second = new_history_id(), new_history_id()
        assert first.startswith("history-")
        assert first != second

    def test_newest_first_and_capped(self):
        history = RunHistory(max_entries=3)
        for i in range(5):
            history.add(summary(f"run-{i}", started_at=1000 + i))
        assert len(history) == 3
        assert [s.name for s in history.entries] == ["run-4", "run-3", "run-2"]

    def test_recent_sorts_by_start(self):
        history = RunHistory()
        history.add(summary("late", 300))
        history.add(summary("early", 100))
        history.add(summary("middle", 200))
        assert [s.name for s in history.recent(2)] == ["late", "middle"]

    def test_get_delete_clear(self):
        history = RunHistory()
        keep = history.add(summary("keep", 1))
        drop = history.add(summary("drop", 2))
        assert history.get(keep).name == "keep"
        history.delete(drop)
        assert history.get(drop) is None
        history.clear()
        assert len(history) == 0

    def test_persists_to_file(self, tmp_path):
        path = tmp_path / "state" / "history.json"
        history = RunHistory(path=path)
        history_id = history.add(summary("saved", 42))

        assert json.loads(path.read_text())[0]["id"] == history_id
        reloaded = RunHistory(path=path)
        assert reloaded.get(history_id).started_at == 42

    def test_corrupt_file_is_ignored(self, tmp_path, caplog):
        path = tmp_path / "history.json"
        path.write_text("{not json")
        with caplog.at_level("WARNING"):
            history = RunHistory(path=path)
        assert len(history) == 0
        assert "Could not read run history" in caplog.text

    def test_invalid_entries_are_skipped(self, tmp_path, caplog):
        path = tmp_path / "history.json"
        good = summary("kept", 5).model_dump(mode="json")
        path.write_text(json.dumps([{"name": "old", "status": "success"}, good]))
        with caplog.at_level("WARNING"):
            history = RunHistory(path=path)
        assert [s.name for s in history.entries] == ["kept"]
        assert "Skipping run history entry 0" in caplog.text

        history.add(summary("new", 6))
        assert [item["name"] for item in json.loads(path.read_text())] == ["new", "kept"]

    def test_non_list_file_is_ignored(self, tmp_path, caplog):
        path = tmp_path / "history.json"
        path.write_text(json.dumps({"runs": []}))
        with caplog.at_level("WARNING"):
            history = RunHistory(path=path)
        assert len(history) == 0
        assert "expected a JSON list" in caplog.text


# ---------------------------------------------------------------------------
# WorkflowRuntime
# ---------------------------------------------------------------------------


@pytest.fixture
def executor(credentials, fake_chat) -> WorkflowExecutor:
    return WorkflowExecutor(
        credentials=credentials,
        chat=fake_chat,
        config=RuntimeConfig(history_path=None),
    )


class TestWorkflowRuntime:
    @pytest.mark.asyncio
    async def test_run_records_summary(self, executor, tmp_path):
        history = RunHistory(path=tmp_path / "history.json")
        runtime = WorkflowRuntime(executor=executor, history=history)

        result, run_summary = await runtime.run(workflow())

        assert result.success
        assert result.outputs["greet"] == "hi"
        assert run_summary.name == "Greeting"
        assert run_summary.status == "success"
        assert run_summary.node_count == 3
        assert run_summary.edge_count == 2
        assert run_summary.duration_ms == result.duration_ms
        assert [e.message for e in run_summary.logs] == [e.message for e in result.logs]
        assert history.recent(1)[0].id == run_summary.id

    @pytest.mark.asyncio
    async def test_document_variables_fill_the_store(self, executor):
        executor.variables.set("global", "name", "from cli")
        wf = workflow(
            nodes=[
                {"id": "start", "kind": "trigger"},
                {
                    "id": "ask",
                    "kind": "llm",
                    "config": {
                        "provider": "openai",
                        "model": "gpt-4o-mini",
                        "prompt": "{{global.name}} / {{workflow.topic}}",
                    },
                },
            ],
            edges=[{"id": "e1", "source": "start", "target": "ask"}],
            variables={"global": {"name": "from doc"}, "workflow": {"topic": "rain"}},
        )
        runtime = WorkflowRuntime(executor=executor, history=RunHistory())
        await runtime.run(wf)

        assert executor.chat.calls[0]["prompt"].startswith("from cli / rain")

    @pytest.mark.asyncio
    async def test_failed_run_is_recorded_as_error(self, executor, caplog):
        wf = workflow(
            nodes=[
                {"id": "start", "kind": "trigger"},
                {"id": "boom", "kind": "script", "config": {"code": "throw new Error('x');"}},
                {"id": "island", "kind": "terminator"},
            ],
            edges=[{"id": "e1", "source": "start", "target": "boom"}],
        )
        runtime = WorkflowRuntime(executor=executor, history=RunHistory())
        with caplog.at_level("WARNING"):
            result, run_summary = await runtime.run(wf)

        assert run_summary.status == "error"
        assert result.errors["boom"].endswith("x")
        assert "Node 'island' is unreachable from trigger" in caplog.text
