"""Shared flowguard configuration utilities.

Centralises reading of ~/.flowguard/configuration.json so the engine, the
dead-letter manager and the CLI share one implementation.

Example file:
    {
      "retry": {"max_attempts": 5, "initial_delay_ms": 500},
      "storage": {"path": "/var/lib/flowguard"},
      "dlq": {"replay_interval_s": 2.0},
      "registry": {"path": "/etc/flowguard/registry.json"}
    }
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from flowguard.retry.policy import RetryPolicy

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

FLOWGUARD_HOME = Path.home() / ".flowguard"
FLOWGUARD_CONFIG_FILE = FLOWGUARD_HOME / "configuration.json"

DEFAULT_REPLAY_INTERVAL_S = 1.0


def get_config_path() -> Path:
    """Config file path; FLOWGUARD_CONFIG overrides the default location."""
    override = os.environ.get("FLOWGUARD_CONFIG")
    return Path(override) if override else FLOWGUARD_CONFIG_FILE


def get_flowguard_config() -> dict[str, Any]:
    """Load flowguard configuration. Missing or unreadable file means defaults."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Ignoring unreadable config {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _section(name: str) -> dict[str, Any]:
    section = get_flowguard_config().get(name)
    return section if isinstance(section, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_default_retry_policy() -> RetryPolicy:
    """Default retry policy, with the config file's ``retry`` section applied."""
    section = _section("retry")
    try:
        return RetryPolicy.from_config(section)
    except ValidationError as e:
        logger.warning(f"Invalid retry policy in config, using defaults: {e}")
        return RetryPolicy()


def get_storage_path() -> Path:
    """Directory of the file-backed execution store."""
    path = _section("storage").get("path")
    return Path(path).expanduser() if path else FLOWGUARD_HOME / "executions"


def get_replay_interval() -> float:
    """Seconds between items of a DLQ replay-all."""
    value = _section("dlq").get("replay_interval_s")
    if isinstance(value, int | float) and value >= 0:
        return float(value)
    return DEFAULT_REPLAY_INTERVAL_S


def get_registry_path() -> Path | None:
    """Optional connector-catalog registry file."""
    path = _section("registry").get("path")
    return Path(path).expanduser() if path else None


# ---------------------------------------------------------------------------
# EngineConfig – shared by the engine, DLQ manager and CLI
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Execution engine configuration loaded from ~/.flowguard/configuration.json."""

    default_policy: RetryPolicy = field(default_factory=get_default_retry_policy)
    storage_path: Path = field(default_factory=get_storage_path)
    replay_interval_s: float = field(default_factory=get_replay_interval)
    registry_path: Path | None = field(default_factory=get_registry_path)
    prune_after_s: float = 7 * 24 * 60 * 60
