"""
Template variables for node configuration.

`{{path}}` tokens in prompts, URLs, headers and bodies are substituted at
execution time. Lookup order:

1. The call context. `input.<path>` reads nested fields of the previous
   node's output; any other path is looked up in the context dict itself.
2. The VariableStore, via `global.<key>` or `workflow.<key>`, with dotted
   access into structured values.

Tokens that resolve to nothing are left verbatim, so resolving twice is a
no-op.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

SCOPES = ("global", "workflow")


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def get_nested(value: Any, path: str) -> Any:
    """Follow a dotted path through dicts (and list indices); MISSING if absent."""
    current = value
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return MISSING
    return current


def format_value(value: Any) -> str:
    """Render a resolved value for insertion into text."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def has_variables(text: str | None) -> bool:
    """Whether text contains at least one {{...}} token."""
    if not text:
        return False
    return TOKEN_PATTERN.search(text) is not None


class VariableStore:
    """
    Two-scope key/value store backing `global.*` and `workflow.*` tokens.

    Global variables live across workflows; workflow variables belong to the
    workflow being run. Both can be persisted to a JSON file.
    """

    def __init__(
        self,
        global_vars: dict[str, Any] | None = None,
        workflow_vars: dict[str, Any] | None = None,
    ):
        self._scopes: dict[str, dict[str, Any]] = {
            "global": dict(global_vars or {}),
            "workflow": dict(workflow_vars or {}),
        }

    def _scope(self, scope: str) -> dict[str, Any]:
        if scope not in self._scopes:
            raise ValueError(f"Unknown variable scope '{scope}' (expected one of {SCOPES})")
        return self._scopes[scope]

    def get(self, scope: str, key: str, default: Any = None) -> Any:
        return self._scope(scope).get(key, default)

    def set(self, scope: str, key: str, value: Any) -> None:
        self._scope(scope)[key] = value

    def delete(self, scope: str, key: str) -> None:
        self._scope(scope).pop(key, None)

    def clear(self, scope: str | None = None) -> None:
        """Clear one scope, or both when scope is None."""
        if scope is None:
            for values in self._scopes.values():
                values.clear()
        else:
            self._scope(scope).clear()

    def items(self, scope: str) -> dict[str, Any]:
        return dict(self._scope(scope))

    def lookup(self, path: str) -> Any:
        """Resolve `scope.key[.nested...]`; MISSING when the scope or key is unknown."""
        scope, _, key_path = path.partition(".")
        if scope not in self._scopes or not key_path:
            return MISSING
        values = self._scopes[scope]
        if key_path in values:
            return values[key_path]
        return get_nested(values, key_path)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {scope: dict(values) for scope, values in self._scopes.items()}

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2, default=str), encoding="utf-8")

    @classmethod
    def load(cls, path: str | Path) -> "VariableStore":
        path = Path(path)
        if not path.exists():
            return cls()
        data = json.loads(path.read_text(encoding="utf-8"))
        return cls(global_vars=data.get("global"), workflow_vars=data.get("workflow"))


class VariableResolver:
    """Substitutes {{path}} tokens. Read-only with respect to the store."""

    def __init__(self, store: VariableStore | None = None):
        self.store = store or VariableStore()

    def lookup(self, path: str, context: dict[str, Any] | None = None) -> Any:
        path = path.strip()
        if context is not None:
            if path.startswith("input."):
                value = get_nested(context.get("input"), path[len("input.") :])
            else:
                value = get_nested(context, path)
            if value is not MISSING:
                return value
        return self.store.lookup(path)

    def resolve(self, text: str, context: dict[str, Any] | None = None) -> str:
        """Replace every resolvable token in text; unresolved tokens stay as written."""
        if not text:
            return text

        def substitute(match: re.Match) -> str:
            value = self.lookup(match.group(1), context)
            if value is MISSING:
                logger.debug("Unresolved variable %s", match.group(0))
                return match.group(0)
            return format_value(value)

        return TOKEN_PATTERN.sub(substitute, text)

    def resolve_value(self, value: Any, context: dict[str, Any] | None = None) -> Any:
        """Resolve tokens in every string leaf of a nested dict/list structure."""
        if isinstance(value, str):
            return self.resolve(value, context)
        if isinstance(value, dict):
            return {k: self.resolve_value(v, context) for k, v in value.items()}
        if isinstance(value, list):
            return [self.resolve_value(v, context) for v in value]
        return value

    def has_variables(self, text: str | None) -> bool:
        return has_variables(text)
