"""Shared flows configuration.

Reads ~/.flows/configuration.json (or the file named by FLOWS_CONFIG_FILE)
once per lookup, with environment variables taking precedence over file
values.  The runner, the CLI and the built-in nodes all read the same
RuntimeConfig.

Example configuration.json::

    {
      "runtime": {"traversal": "canvas_dfs", "stop_on_failure": true,
                  "max_attempts": 3, "retry_backoff_seconds": 1.0},
      "http": {"timeout_seconds": 30},
      "wait": {"max_seconds": 3600},
      "journal": {"dir": "~/.flows/journal"},
      "logging": {"level": "INFO", "format": "auto"}
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_FILE = Path.home() / ".flows" / "configuration.json"

DEFAULT_TRAVERSAL = "canvas_dfs"
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 1.0
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_WAIT_SECONDS = 3600.0


def get_config_path() -> Path:
    override = os.environ.get("FLOWS_CONFIG_FILE")
    return Path(override).expanduser() if override else DEFAULT_CONFIG_FILE


def get_flows_config() -> dict[str, Any]:
    """Load flows configuration. Missing or corrupt files read as empty."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def _section(name: str) -> dict[str, Any]:
    value = get_flows_config().get(name, {})
    return value if isinstance(value, dict) else {}


def _env_bool(name: str) -> bool | None:
    raw = os.environ.get(name)
    if raw is None:
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_traversal() -> str:
    return os.environ.get("FLOWS_TRAVERSAL") or _section("runtime").get(
        "traversal", DEFAULT_TRAVERSAL
    )


def get_stop_on_failure() -> bool:
    env = _env_bool("FLOWS_STOP_ON_FAILURE")
    if env is not None:
        return env
    return bool(_section("runtime").get("stop_on_failure", True))


def get_max_attempts() -> int:
    raw = os.environ.get("FLOWS_MAX_ATTEMPTS") or _section("runtime").get(
        "max_attempts", DEFAULT_MAX_ATTEMPTS
    )
    try:
        return max(1, int(raw))
    except (TypeError, ValueError):
        return DEFAULT_MAX_ATTEMPTS


def get_retry_backoff() -> float:
    raw = _section("runtime").get("retry_backoff_seconds", DEFAULT_RETRY_BACKOFF_SECONDS)
    try:
        return max(0.0, float(raw))
    except (TypeError, ValueError):
        return DEFAULT_RETRY_BACKOFF_SECONDS


def get_http_timeout() -> float:
    raw = _section("http").get("timeout_seconds", DEFAULT_HTTP_TIMEOUT_SECONDS)
    try:
        return float(raw)
    except (TypeError, ValueError):
        return DEFAULT_HTTP_TIMEOUT_SECONDS


def get_max_wait() -> float:
    raw = _section("wait").get("max_seconds", DEFAULT_MAX_WAIT_SECONDS)
    try:
        return float(raw)
    except (TypeError, ValueError):
        return DEFAULT_MAX_WAIT_SECONDS


def get_journal_dir() -> Path | None:
    raw = os.environ.get("FLOWS_JOURNAL_DIR") or _section("journal").get("dir")
    return Path(raw).expanduser() if raw else None


def get_log_level() -> str:
    return os.environ.get("LOG_LEVEL") or _section("logging").get("level", "INFO")


def get_log_format() -> str:
    return os.environ.get("LOG_FORMAT") or _section("logging").get("format", "auto")


# ---------------------------------------------------------------------------
# RuntimeConfig
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Runner configuration loaded from ~/.flows/configuration.json and env."""

    traversal: str = field(default_factory=get_traversal)
    stop_on_failure: bool = field(default_factory=get_stop_on_failure)
    max_attempts: int = field(default_factory=get_max_attempts)
    retry_backoff_seconds: float = field(default_factory=get_retry_backoff)
    http_timeout_seconds: float = field(default_factory=get_http_timeout)
    max_wait_seconds: float = field(default_factory=get_max_wait)
    journal_dir: Path | None = field(default_factory=get_journal_dir)
    log_level: str = field(default_factory=get_log_level)
    log_format: str = field(default_factory=get_log_format)

    def backoff_for(self, attempt: int) -> float:
        """Delay before retrying after ``attempt`` failed attempts: base * 2^(n-1)."""
        if attempt < 1:
            return 0.0
        return self.retry_backoff_seconds * (2 ** (attempt - 1))
