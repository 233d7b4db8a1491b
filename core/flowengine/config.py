"""Shared flowengine configuration utilities.

Centralises reading of ~/.flowengine/configuration.json so that the CLI,
the runtime and the provider layer share one implementation.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_MAX_DEPTH = 1000
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_POLL_MAX_ATTEMPTS = 120
DEFAULT_SCRIPT_TIMEOUT = 5.0
DEFAULT_SCRIPT_MAX_MEMORY = 128 * 1024 * 1024

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

FLOWENGINE_CONFIG_FILE = Path.home() / ".flowengine" / "configuration.json"


def get_config_path() -> Path:
    """Return the config file path, honouring FLOWENGINE_CONFIG."""
    override = os.environ.get("FLOWENGINE_CONFIG")
    if override:
        return Path(override)
    return FLOWENGINE_CONFIG_FILE


def get_flowengine_config() -> dict[str, Any]:
    """Load configuration from ~/.flowengine/configuration.json."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def _execution_setting(key: str, default: Any) -> Any:
    return get_flowengine_config().get("execution", {}).get(key, default)


def get_max_depth() -> int:
    """Return the traversal depth guard."""
    return int(_execution_setting("max_depth", DEFAULT_MAX_DEPTH))


def get_http_timeout() -> float:
    return float(_execution_setting("http_timeout", DEFAULT_HTTP_TIMEOUT))


def get_poll_interval() -> float:
    """Seconds between status polls for asynchronous image providers."""
    return float(_execution_setting("poll_interval", DEFAULT_POLL_INTERVAL))


def get_poll_max_attempts() -> int:
    return int(_execution_setting("poll_max_attempts", DEFAULT_POLL_MAX_ATTEMPTS))


def get_script_timeout() -> float:
    """Wall-clock seconds a script or condition may run before V8 is stopped."""
    return float(_execution_setting("script_timeout", DEFAULT_SCRIPT_TIMEOUT))


def get_script_max_memory() -> int:
    return int(_execution_setting("script_max_memory", DEFAULT_SCRIPT_MAX_MEMORY))


def get_history_path() -> Path | None:
    """Return where run history is persisted, if configured."""
    value = get_flowengine_config().get("history_path")
    return Path(value).expanduser() if value else None


def get_dotenv_path() -> Path | None:
    value = get_flowengine_config().get("dotenv_path")
    return Path(value).expanduser() if value else None


# ---------------------------------------------------------------------------
# RuntimeConfig – shared by the executor, providers and CLI
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Execution configuration loaded from ~/.flowengine/configuration.json."""

    max_depth: int = field(default_factory=get_max_depth)
    http_timeout: float = field(default_factory=get_http_timeout)
    poll_interval: float = field(default_factory=get_poll_interval)
    poll_max_attempts: int = field(default_factory=get_poll_max_attempts)
    script_timeout: float = field(default_factory=get_script_timeout)
    script_max_memory: int = field(default_factory=get_script_max_memory)
    history_path: Path | None = field(default_factory=get_history_path)
    dotenv_path: Path | None = field(default_factory=get_dotenv_path)
