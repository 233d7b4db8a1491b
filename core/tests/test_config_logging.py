"""Tests for configuration loading and structured logging."""

import json
import logging

from flowengine.config import (
    DEFAULT_MAX_DEPTH,
    RuntimeConfig,
    get_flowengine_config,
    get_history_path,
)
from flowengine.observability import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)
from flowengine.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    strip_ansi_codes,
)


def make_record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("flowengine.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestConfig:
    def test_defaults_without_file(self):
        assert get_flowengine_config() == {}
        config = RuntimeConfig()
        assert config.max_depth == DEFAULT_MAX_DEPTH
        assert config.history_path is None

    def test_values_from_file(self, tmp_path, monkeypatch):
        path = tmp_path / "configuration.json"
        path.write_text(
            json.dumps(
                {
                    "execution": {"max_depth": 50, "http_timeout": 3, "script_timeout": 2},
                    "history_path": str(tmp_path / "history.json"),
                }
            )
        )
        monkeypatch.setenv("FLOWENGINE_CONFIG", str(path))

        config = RuntimeConfig()
        assert config.max_depth == 50
        assert config.http_timeout == 3.0
        assert config.script_timeout == 2.0
        assert get_history_path() == tmp_path / "history.json"

    def test_unreadable_file_falls_back_to_defaults(self, tmp_path, monkeypatch):
        path = tmp_path / "configuration.json"
        path.write_text("{broken")
        monkeypatch.setenv("FLOWENGINE_CONFIG", str(path))
        assert get_flowengine_config() == {}
        assert RuntimeConfig().max_depth == DEFAULT_MAX_DEPTH


# ---------------------------------------------------------------------------
# Trace context
# ---------------------------------------------------------------------------


class TestTraceContext:
    def test_set_merges(self):
        set_trace_context(run_id="run-1", workflow_id="wf")
        set_trace_context(node_id="n1")
        assert get_trace_context() == {"run_id": "run-1", "workflow_id": "wf", "node_id": "n1"}

    def test_none_hides_key(self):
        set_trace_context(run_id="run-1", node_id="n1")
        set_trace_context(node_id=None)
        assert get_trace_context() == {"run_id": "run-1"}
        entry = json.loads(StructuredFormatter().format(make_record("between nodes")))
        assert "node_id" not in entry

    def test_clear(self):
        set_trace_context(run_id="run-1")
        clear_trace_context()
        assert get_trace_context() == {}


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class TestFormatters:
    def test_structured_includes_context_and_extras(self):
        set_trace_context(run_id="abc", node_id="fetch")
        line = StructuredFormatter().format(
            make_record("\033[32mdone\033[0m", event="node_complete", latency_ms=12)
        )
        entry = json.loads(line)

        assert entry["message"] == "done"
        assert entry["level"] == "info"
        assert entry["run_id"] == "abc"
        assert entry["node_id"] == "fetch"
        assert entry["event"] == "node_complete"
        assert entry["latency_ms"] == 12

    def test_human_prefix(self):
        set_trace_context(run_id="0123456789abcdef", node_id="fetch")
        text = HumanReadableFormatter().format(make_record("hello", event="node_info"))
        assert "[run:89abcdef | node:fetch] hello [node_info]" in strip_ansi_codes(text)

    def test_configure_logging_installs_single_handler(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(level="debug", format="json")
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredFormatter)
            assert root.level == logging.DEBUG

            configure_logging(format="human")
            assert isinstance(root.handlers[0].formatter, HumanReadableFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
