"""
Code sandbox for condition and script nodes.

User code runs in V8 through mini-racer. Every call gets a fresh context that
holds only the standard ECMAScript globals plus the bindings handed to it:
`input` and `console` for scripts, the context keys for conditions. There is
no require, fetch or process, and nothing reaches the Python host.

Data crosses the boundary as JSON in both directions, so scripts see a copy
of their input and return plain Python values.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from py_mini_racer import JSEvalException, JSOOMException, JSTimeoutException, MiniRacer

from flowengine.config import get_script_max_memory, get_script_timeout
from flowengine.errors import EvaluationError

logger = logging.getLogger(__name__)

NO_VALUE_MESSAGE = "Code executed but returned no value."
NO_VALUE_HINT = (
    "The code has a return statement but returned undefined. Return an explicit value."
)

CONSOLE_LEVELS = {
    "log": logging.INFO,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")

# Keys that cannot be function parameter names.
RESERVED_WORDS = frozenset(
    """
    arguments await break case catch class const continue debugger default delete do
    else enum eval export extends false finally for function if implements import in
    instanceof interface let new null package private protected public return static
    super switch this throw true try typeof var void while with yield
    """.split()
)

# Compiles the body with `new Function` inside V8 and reports back a single
# JSON envelope: {"console": [[level, text], ...], "outcome": {...}}.
RUNNER = """
(function (payload) {
  var lines = [];
  function show(value) {
    if (typeof value === "string") return value;
    try {
      var text = JSON.stringify(value);
      return text === undefined ? String(value) : text;
    } catch (e) {
      return String(value);
    }
  }
  function failure(e) {
    return {
      kind: "error",
      name: (e && typeof e.name === "string" && e.name) || "Error",
      message: String((e && e.message) || e),
    };
  }
  var console = {};
  Object.keys(%(levels)s).forEach(function (level) {
    console[level] = function () {
      lines.push([level, Array.prototype.map.call(arguments, show).join(" ")]);
    };
  });
  var noReturn = {};
  var outcome;
  try {
    var params = payload.names.slice();
    var args = payload.values.slice();
    if (payload.script) {
      params.push("console", "$noReturn");
      args.push(console, noReturn);
    }
    var fn = new Function(...params, payload.body);
    var value = fn(...args);
    if (value === noReturn) outcome = { kind: "none" };
    else if (value === undefined) outcome = { kind: "undefined" };
    else outcome = { kind: "value", value: value };
  } catch (e) {
    outcome = failure(e);
  }
  try {
    return JSON.stringify({ console: lines, outcome: outcome });
  } catch (e) {
    return JSON.stringify({ console: lines, outcome: failure(e) });
  }
})(JSON.parse(%(payload)s))
"""


@dataclass
class ConsoleLine:
    level: str
    text: str


@dataclass
class CodeSandbox:
    """
    Evaluates condition expressions and runs script bodies.

    Console output from scripts goes to this module's logger and is kept in
    `console` until clear_console() is called. `timeout` (seconds) and
    `max_memory` (bytes) bound each call; hitting either stops V8 outright,
    so a script cannot catch it.
    """

    timeout: float = field(default_factory=get_script_timeout)
    max_memory: int = field(default_factory=get_script_max_memory)
    console: list[ConsoleLine] = field(default_factory=list)

    def clear_console(self) -> None:
        self.console.clear()

    def evaluate_expression(self, expression: str, context: dict[str, Any]) -> bool:
        """Evaluate a boolean expression with each context key bound as a name."""
        if not expression or not expression.strip():
            raise EvaluationError("Expression is empty")

        names = [key for key in context if IDENTIFIER.match(key) and key not in RESERVED_WORDS]
        body = f"return Boolean(\n{expression.strip().rstrip(';')}\n);"
        outcome = self._run(names, [context[name] for name in names], body, script=False)

        if outcome["kind"] == "error":
            raise EvaluationError(
                f"Condition evaluation failed: {outcome['name']}: {outcome['message']}"
            )
        return outcome.get("value") is True

    def execute_script(self, code: str, input: Any = None) -> Any:
        """
        Run code as a function body with `input` bound.

        Returns the script's return value converted to plain Python. A body
        that finishes without executing a return of its own yields
        {"success": True, "executed": True}; a return that produces undefined
        yields a hint dict.
        """
        if not code or not code.strip():
            raise EvaluationError("Script is empty")

        outcome = self._run(["input"], [input], f"{code}\n;return $noReturn;", script=True)

        kind = outcome["kind"]
        if kind == "error":
            raise EvaluationError(
                f"Script execution failed ({outcome['name']}): {outcome['message']}"
            )
        if kind == "none":
            return {"success": True, "executed": True}
        if kind == "undefined":
            return {"success": True, "message": NO_VALUE_MESSAGE, "hint": NO_VALUE_HINT}
        return outcome.get("value")

    def _run(self, names: list[str], values: list[Any], body: str, script: bool) -> dict:
        try:
            payload = json.dumps(
                {"names": names, "values": values, "body": body, "script": script},
                default=str,
                allow_nan=False,
            )
        except ValueError as e:
            return {"kind": "error", "name": "TypeError", "message": f"Input is not JSON: {e}"}

        source = RUNNER % {"levels": json.dumps(CONSOLE_LEVELS), "payload": json.dumps(payload)}
        ctx = MiniRacer()
        try:
            ctx.set_hard_memory_limit(self.max_memory)
            raw = ctx.eval(source, timeout_sec=self.timeout)
        except JSTimeoutException:
            return {
                "kind": "error",
                "name": "RangeError",
                "message": f"script exceeded the time limit of {self.timeout:g}s",
            }
        except JSOOMException:
            return {
                "kind": "error",
                "name": "RangeError",
                "message": f"script exceeded the memory limit of {self.max_memory} bytes",
            }
        except JSEvalException as e:
            return {"kind": "error", "name": "Error", "message": str(e)}
        finally:
            ctx.close()

        envelope = json.loads(raw)
        for level, text in envelope["console"]:
            self.console.append(ConsoleLine(level, text))
            logger.log(CONSOLE_LEVELS.get(level, logging.INFO), "[script] %s", text)
        return envelope["outcome"]
