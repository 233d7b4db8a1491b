"""
Tests for CodeSandbox: condition expressions and script bodies.
"""

import pytest

from flowengine.errors import EvaluationError
from flowengine.graph.code_sandbox import NO_VALUE_HINT, NO_VALUE_MESSAGE, CodeSandbox


@pytest.fixture
def sandbox() -> CodeSandbox:
    return CodeSandbox(timeout=5.0)


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class TestEvaluateExpression:
    def test_numeric_comparison(self, sandbox):
        assert sandbox.evaluate_expression("input > 10", {"input": 15}) is True
        assert sandbox.evaluate_expression("input > 10", {"input": 5}) is False

    def test_strict_equality_on_nested_field(self, sandbox):
        context = {"input": {"status": "success"}}
        assert sandbox.evaluate_expression("input.status === 'success'", context) is True
        assert sandbox.evaluate_expression("input.status !== 'success'", context) is False

    def test_fields_of_previous_output_are_bound_as_names(self, sandbox):
        output = {"count": 3, "items": ["a", "b", "c"]}
        context = {**output, "input": output}
        assert sandbox.evaluate_expression("count === items.length", context) is True

    def test_result_is_coerced_to_truthiness(self, sandbox):
        assert sandbox.evaluate_expression("input.name", {"input": {"name": "x"}}) is True
        assert sandbox.evaluate_expression("input.name", {"input": {"name": ""}}) is False
        assert sandbox.evaluate_expression("[]", {}) is True

    def test_logical_and_ternary(self, sandbox):
        context = {"input": {"score": 72, "flag": None}}
        assert sandbox.evaluate_expression("input.score >= 70 && !input.flag", context)
        assert sandbox.evaluate_expression("(input.flag ?? 'fallback') === 'fallback'", context)
        assert sandbox.evaluate_expression("input.score > 90 ? false : true", context)

    def test_whitelisted_builtins(self, sandbox):
        context = {"input": {"tags": ["urgent", "billing"], "text": " Hello "}}
        assert sandbox.evaluate_expression("input.tags.includes('urgent')", context)
        assert sandbox.evaluate_expression("input.text.trim().toLowerCase() === 'hello'", context)
        assert sandbox.evaluate_expression("Math.max(1, 5, 3) === 5", context)
        assert sandbox.evaluate_expression("typeof input.tags === 'object'", context)

    def test_loose_equality(self, sandbox):
        assert sandbox.evaluate_expression("input == 1", {"input": "1"}) is True
        assert sandbox.evaluate_expression("input === 1", {"input": "1"}) is False

    def test_empty_expression_is_an_error(self, sandbox):
        with pytest.raises(EvaluationError, match="Expression is empty"):
            sandbox.evaluate_expression("   ", {"input": 1})

    def test_syntax_error_is_wrapped(self, sandbox):
        with pytest.raises(EvaluationError) as exc_info:
            sandbox.evaluate_expression("input >", {"input": 1})
        assert exc_info.value.message.startswith("Condition evaluation failed: SyntaxError")

    def test_unknown_name_is_reference_error(self, sandbox):
        with pytest.raises(EvaluationError, match="ReferenceError: missing is not defined"):
            sandbox.evaluate_expression("missing > 1", {"input": 1})

    def test_host_builtins_are_not_reachable(self, sandbox):
        host_calls = ("__import__('os')", "open('/etc/passwd')", "require('fs')", "process.exit(1)")
        for expression in host_calls:
            with pytest.raises(EvaluationError):
                sandbox.evaluate_expression(expression, {"input": 1})

    def test_statements_are_not_expressions(self, sandbox):
        with pytest.raises(EvaluationError):
            sandbox.evaluate_expression("let x = 1", {})


# ---------------------------------------------------------------------------
# Scripts
# ---------------------------------------------------------------------------


class TestExecuteScript:
    def test_return_value(self, sandbox):
        assert sandbox.execute_script("return 2+2;") == 4

    def test_no_return_reports_execution(self, sandbox):
        assert sandbox.execute_script("let x=1;") == {"success": True, "executed": True}

    def test_return_nested_in_function_only_counts_as_no_return(self, sandbox):
        code = "const f = () => { return 1; }; f();"
        assert sandbox.execute_script(code) == {"success": True, "executed": True}

    def test_return_of_undefined_gives_hint(self, sandbox):
        result = sandbox.execute_script("if (input) { return; }", input=True)
        assert result == {"success": True, "message": NO_VALUE_MESSAGE, "hint": NO_VALUE_HINT}

    def test_input_is_bound(self, sandbox):
        code = "return input.items.map(i => i.price * i.qty).reduce((a, b) => a + b, 0);"
        data = {"items": [{"price": 2, "qty": 3}, {"price": 5, "qty": 1}]}
        assert sandbox.execute_script(code, data) == 11

    def test_input_is_copied(self, sandbox):
        data = {"values": [1, 2]}
        sandbox.execute_script("input.values.push(3); return input.values.length;", data)
        assert data == {"values": [1, 2]}

    def test_objects_and_arrays_come_back_as_python(self, sandbox):
        code = """
        const words = input.split(' ');
        const counts = {};
        for (const w of words) {
            counts[w] = (counts[w] || 0) + 1;
        }
        return { total: words.length, counts, unique: Object.keys(counts) };
        """
        result = sandbox.execute_script(code, "a b a")
        assert result == {"total": 3, "counts": {"a": 2, "b": 1}, "unique": ["a", "b"]}

    def test_template_literals_and_string_methods(self, sandbox):
        code = "const name = input.name.toUpperCase(); return `Hello, ${name}!`;"
        assert sandbox.execute_script(code, {"name": "ada"}) == "Hello, ADA!"

    def test_loops_break_and_continue(self, sandbox):
        code = """
        let total = 0;
        for (let i = 0; i < 10; i++) {
            if (i % 2 === 0) continue;
            if (i > 7) break;
            total += i;
        }
        let n = 0;
        while (n < 3) { n++; }
        return [total, n];
        """
        assert sandbox.execute_script(code) == [16, 3]

    def test_closures_capture_loop_bindings(self, sandbox):
        code = """
        const fns = [];
        for (let i = 0; i < 3; i++) { fns.push(() => i); }
        return fns.map(f => f());
        """
        assert sandbox.execute_script(code) == [0, 1, 2]

    def test_functions_destructuring_and_spread(self, sandbox):
        code = """
        function area({ width, height = 2 }) { return width * height; }
        const [first, ...rest] = input;
        return { first, rest, area: area({ width: 4 }), merged: { ...{ a: 1 }, b: 2 } };
        """
        result = sandbox.execute_script(code, [1, 2, 3])
        assert result == {"first": 1, "rest": [2, 3], "area": 8, "merged": {"a": 1, "b": 2}}

    def test_json_and_number_helpers(self, sandbox):
        code = """
        const parsed = JSON.parse('{"price": "12.5"}');
        const price = parseFloat(parsed.price);
        return {
            text: JSON.stringify({ price, ok: true }),
            fixed: (price * 3).toFixed(2),
            whole: parseInt('42px'),
            nan: isNaN(Number('abc')),
        };
        """
        assert sandbox.execute_script(code) == {
            "text": '{"price":12.5,"ok":true}',
            "fixed": "37.50",
            "whole": 42,
            "nan": True,
        }

    def test_try_catch_inside_script(self, sandbox):
        code = """
        try {
            throw new Error('bad input');
        } catch (e) {
            return e.message;
        }
        """
        assert sandbox.execute_script(code) == "bad input"

    def test_uncaught_throw_is_wrapped_with_error_name(self, sandbox):
        with pytest.raises(EvaluationError) as exc_info:
            sandbox.execute_script("throw new TypeError('nope');")
        assert exc_info.value.message == "Script execution failed (TypeError): nope"

    def test_runtime_type_error(self, sandbox):
        with pytest.raises(EvaluationError, match=r"Script execution failed \(TypeError\)"):
            sandbox.execute_script("return input.missing.deeper;", {})

    def test_syntax_error(self, sandbox):
        with pytest.raises(EvaluationError, match=r"Script execution failed \(SyntaxError\)"):
            sandbox.execute_script("return (1 + ;")

    def test_empty_script_is_an_error(self, sandbox):
        with pytest.raises(EvaluationError):
            sandbox.execute_script("")

    def test_time_limit_stops_endless_loop(self):
        sandbox = CodeSandbox(timeout=0.5)
        with pytest.raises(EvaluationError, match=r"\(RangeError\): .*time limit of 0.5s"):
            sandbox.execute_script("while (true) {}")

    def test_time_limit_is_not_catchable(self):
        sandbox = CodeSandbox(timeout=0.5)
        with pytest.raises(EvaluationError, match="time limit"):
            sandbox.execute_script("try { for (;;) {} } catch (e) { return 'caught'; }")

    def test_oversized_string_fails_instead_of_allocating(self, sandbox):
        with pytest.raises(EvaluationError, match=r"\(RangeError\)"):
            sandbox.execute_script("return 'x'.repeat(1e9).length;")

    def test_unbounded_growth_is_stopped(self):
        sandbox = CodeSandbox(timeout=10.0, max_memory=32 * 1024 * 1024)
        code = "const chunks = []; while (true) { chunks.push('x'.repeat(4096) + chunks.length); }"
        with pytest.raises(EvaluationError, match="memory limit|time limit"):
            sandbox.execute_script(code)

    def test_runaway_recursion_is_range_error(self, sandbox):
        with pytest.raises(EvaluationError, match=r"\(RangeError\)"):
            sandbox.execute_script("function f(n) { return f(n + 1); } return f(0);")

    def test_console_output_is_captured(self, sandbox, caplog):
        with caplog.at_level("INFO", logger="flowengine.graph.code_sandbox"):
            sandbox.execute_script("console.log('count', input.length, { a: 1 });", [1, 2])
        assert [line.text for line in sandbox.console] == ['count 2 {"a":1}']
        assert "[script] count 2" in caplog.text

    def test_console_levels(self, sandbox, caplog):
        with caplog.at_level("DEBUG", logger="flowengine.graph.code_sandbox"):
            sandbox.execute_script("console.warn('careful'); console.error('broken');")
        assert [line.level for line in sandbox.console] == ["warn", "error"]
        assert [r.levelname for r in caplog.records] == ["WARNING", "ERROR"]

    def test_console_output_kept_when_script_fails(self, sandbox):
        with pytest.raises(EvaluationError):
            sandbox.execute_script("console.log('before'); throw new Error('after');")
        assert [line.text for line in sandbox.console] == ["before"]

    def test_no_host_capabilities(self, sandbox):
        code = "return [typeof require, typeof process, typeof fetch, typeof XMLHttpRequest];"
        assert sandbox.execute_script(code) == ["undefined"] * 4


# ---------------------------------------------------------------------------
# Language coverage
# ---------------------------------------------------------------------------


class TestJavaScriptSemantics:
    def test_regular_expressions(self, sandbox):
        code = r"""
        return {
            digits: /\d+/.test(input),
            replaced: 'abcb'.replace(/b/g, 'X'),
            words: input.match(/[a-z]+/g),
        };
        """
        assert sandbox.execute_script(code, "order 42 shipped") == {
            "digits": True,
            "replaced": "aXcX",
            "words": ["order", "shipped"],
        }

    def test_schedule_template_parses_numbered_tasks(self, sandbox):
        code = r"""
        const tasks = input.match(/\d+\.\s*([^\n]+)/g) || [];
        const schedule = tasks.map((task, index) => ({
          id: index + 1,
          task: task.replace(/^\d+\.\s*/, ''),
          week: Math.floor(index / 3) + 1,
          priority: index < 5 ? 'high' : 'medium'
        }));
        return {
          totalTasks: schedule.length,
          schedule,
          estimatedWeeks: Math.ceil(schedule.length / 3)
        };
        """
        result = sandbox.execute_script(code, "1. Draft outline\n2. Write intro\n3. Review")
        assert result["totalTasks"] == 3
        assert result["estimatedWeeks"] == 1
        assert result["schedule"][1] == {
            "id": 2,
            "task": "Write intro",
            "week": 1,
            "priority": "high",
        }

    def test_classes_switch_and_collections(self, sandbox):
        code = """
        class Counter {
            constructor() { this.seen = new Map(); }
            add(word) { this.seen.set(word, (this.seen.get(word) || 0) + 1); }
        }
        const counter = new Counter();
        input.forEach(w => counter.add(w));
        let label;
        switch (counter.seen.size) {
            case 2: label = 'two'; break;
            default: label = 'other';
        }
        return { label, unique: [...new Set(input)], a: counter.seen.get('a') };
        """
        result = sandbox.execute_script(code, ["a", "b", "a"])
        assert result == {"label": "two", "unique": ["a", "b"], "a": 2}

    def test_numbers_are_doubles(self, sandbox):
        assert sandbox.execute_script("return 9007199254740993;") == 9007199254740992
        assert sandbox.execute_script("return [1 << 40, 5 & 3, 0.1 + 0.2];") == [
            256,
            1,
            0.30000000000000004,
        ]
        assert sandbox.execute_script("return 10 / 4;") == 2.5

    def test_non_finite_numbers_become_null(self, sandbox):
        assert sandbox.execute_script("return [1 / 0, NaN];") == [None, None]

    def test_undefined_fields_are_dropped(self, sandbox):
        assert sandbox.execute_script("return { a: 1, b: undefined, f: () => 1 };") == {"a": 1}

    def test_unserializable_result_is_an_error(self, sandbox):
        with pytest.raises(EvaluationError, match=r"\(TypeError\)"):
            sandbox.execute_script("const o = {}; o.self = o; return o;")

    def test_condition_accepts_regex_and_trailing_semicolon(self, sandbox):
        context = {"input": {"email": "ada@example.com"}}
        assert sandbox.evaluate_expression("/@example\\.com$/.test(input.email);", context)

    def test_condition_skips_keys_that_are_not_names(self, sandbox):
        output = {"status-code": 200, "class": "x", "ok": True}
        context = {**output, "input": output}
        assert sandbox.evaluate_expression("ok && input['status-code'] === 200", context)
