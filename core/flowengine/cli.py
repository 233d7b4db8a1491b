"""
Command-line interface for flowengine.

Usage:
    flowengine run workflows/summarize.json --var global.city=Seoul
    flowengine validate workflows/summarize.json
    flowengine history --limit 5
"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError


def _load_workflow(path: str):
    from flowengine.graph.edge import WorkflowSpec

    workflow_path = Path(path)
    if not workflow_path.exists():
        print(f"Workflow file not found: {workflow_path}", file=sys.stderr)
        return None
    try:
        return WorkflowSpec.model_validate_json(workflow_path.read_text(encoding="utf-8"))
    except ValidationError as e:
        print(f"Invalid workflow document {workflow_path}:\n{e}", file=sys.stderr)
        return None


def parse_var(text: str) -> tuple[str, str, Any]:
    """Parse 'scope.key=value'; the value is JSON when it parses, else a string."""
    target, sep, raw = text.partition("=")
    scope, dot, key = target.partition(".")
    if not sep or not dot or not key or scope not in ("global", "workflow"):
        raise argparse.ArgumentTypeError(
            f"expected global.<key>=<value> or workflow.<key>=<value>, got '{text}'"
        )
    try:
        value = json.loads(raw)
    except ValueError:
        value = raw
    return scope, key, value


async def run_until_interrupted(runtime, workflow):
    """
    Run the workflow with Ctrl-C routed to runtime.cancel().

    The first Ctrl-C lets the running node finish and records a cancelled run;
    a second one interrupts immediately.
    """
    loop = asyncio.get_running_loop()

    def interrupt() -> None:
        print("\nInterrupted, stopping after the current node...", file=sys.stderr)
        loop.remove_signal_handler(signal.SIGINT)
        runtime.cancel()

    try:
        loop.add_signal_handler(signal.SIGINT, interrupt)
    except NotImplementedError:
        # Windows event loops: Ctrl-C stays a KeyboardInterrupt
        return await runtime.run(workflow)
    try:
        return await runtime.run(workflow)
    finally:
        loop.remove_signal_handler(signal.SIGINT)


def cmd_run(args: argparse.Namespace) -> int:
    from flowengine.config import RuntimeConfig
    from flowengine.graph.executor import RunStatus, WorkflowExecutor
    from flowengine.graph.variables import VariableStore
    from flowengine.observability import configure_logging
    from flowengine.runtime.workflow_runtime import WorkflowRuntime

    configure_logging(level=args.log_level, format=args.log_format)

    workflow = _load_workflow(args.workflow)
    if workflow is None:
        return 1

    config = RuntimeConfig()
    variables = VariableStore.load(args.variables) if args.variables else VariableStore()
    for scope, key, value in args.var or []:
        variables.set(scope, key, value)

    executor = WorkflowExecutor(variables=variables, config=config)
    runtime = WorkflowRuntime(executor=executor)
    result, summary = asyncio.run(run_until_interrupted(runtime, workflow))

    print(f"\n{workflow.name}: {result.status} in {result.duration_ms} ms")
    for node in workflow.nodes:
        state = executor.state.get_state(node.id)
        line = f"  {node.id:<24} {state.status:<8}"
        if state.duration_ms is not None:
            line += f" {state.duration_ms:>6} ms"
        if state.error:
            line += f"  {state.error}"
        print(line)

    if args.output:
        Path(args.output).write_text(
            json.dumps(result.outputs, indent=2, default=str), encoding="utf-8"
        )
        print(f"\nNode outputs written to {args.output}")

    if result.status == RunStatus.CANCELLED:
        return 130
    return 0 if result.success else 1


def cmd_validate(args: argparse.Namespace) -> int:
    workflow = _load_workflow(args.workflow)
    if workflow is None:
        return 1

    problems = workflow.problems()
    if not problems:
        print(f"✓ {workflow.name}: {len(workflow.nodes)} nodes, {len(workflow.edges)} edges")
        return 0
    print(f"✗ {workflow.name}: {len(problems)} problem(s)")
    for problem in problems:
        print(f"  - {problem}")
    return 1


def cmd_history(args: argparse.Namespace) -> int:
    from flowengine.config import get_history_path
    from flowengine.runtime.history import RunHistory

    path = Path(args.path) if args.path else get_history_path()
    if path is None:
        print("No history file configured (set history_path or pass --path)", file=sys.stderr)
        return 1

    history = RunHistory(path=path)
    for summary in history.recent(args.limit):
        print(
            f"{summary.id}  {summary.name:<30} {summary.status:<9} "
            f"{summary.duration_ms or 0:>7} ms  "
            f"nodes={summary.node_count} edges={summary.edge_count}"
        )
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    run_parser = subparsers.add_parser("run", help="Run a workflow document")
    run_parser.add_argument("workflow", help="Path to a workflow JSON file")
    run_parser.add_argument(
        "--var",
        action="append",
        type=parse_var,
        metavar="SCOPE.KEY=VALUE",
        help="Set a global/workflow variable (repeatable)",
    )
    run_parser.add_argument("--variables", help="JSON file with saved variables")
    run_parser.add_argument("--output", help="Write node outputs to this JSON file")
    run_parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    run_parser.add_argument(
        "--log-format",
        default="auto",
        choices=["auto", "human", "json"],
        help="Log output format",
    )
    run_parser.set_defaults(func=cmd_run)

    validate_parser = subparsers.add_parser("validate", help="Report structural problems")
    validate_parser.add_argument("workflow", help="Path to a workflow JSON file")
    validate_parser.set_defaults(func=cmd_validate)

    history_parser = subparsers.add_parser("history", help="Show recent runs")
    history_parser.add_argument("--path", help="History JSON file")
    history_parser.add_argument("--limit", type=int, default=10)
    history_parser.set_defaults(func=cmd_history)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="flowengine",
        description="flowengine - Run node-based automation workflows",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
