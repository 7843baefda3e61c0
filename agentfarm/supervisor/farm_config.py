"""Project-scoped agent farm configuration helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agentfarm.contracts import CONFIG_SCHEMA_V1, SUPPORTED_CONFIG_SCHEMAS
from agentfarm.errors import ConfigError

logger = logging.getLogger("agentfarm.supervisor.farm_config")

CONFIG_FILENAME = "af-config.json"
PROJECT_ROOT_ENV = "AGENT_FARM_ROOT"
DEFAULT_STATE_DIR = ".agent-farm"
# Substring shared by every long-running server the farm spawns. Matching on it
# is a heuristic: a marker that is too generic yields false-positive orphans.
DEFAULT_ROLE_PATH_MARKER = "agent-farm/servers/"
DEFAULT_TERMINATION_TIMEOUT_SECONDS = 10.0
PROJECT_MARKERS = (CONFIG_FILENAME, DEFAULT_STATE_DIR, ".git")


@dataclass(frozen=True)
class FarmConfig:
    """Resolved configuration for one project."""

    project_root: Path
    role_path_marker: str = DEFAULT_ROLE_PATH_MARKER
    state_dir: str = DEFAULT_STATE_DIR
    termination_timeout_seconds: float | None = DEFAULT_TERMINATION_TIMEOUT_SECONDS

    @property
    def state_db_path(self) -> Path:
        return self.project_root / self.state_dir / "state.db"


def resolve_project_root(explicit: str | Path | None = None, cwd: Path | None = None) -> Path:
    """Resolve the project root from an argument, the environment, or the cwd."""
    if explicit:
        return Path(explicit).expanduser().resolve()
    from_env = str(os.getenv(PROJECT_ROOT_ENV, "")).strip()
    if from_env:
        return Path(from_env).expanduser().resolve()
    start = (cwd or Path.cwd()).resolve()
    for candidate in (start, *start.parents):
        if any((candidate / marker).exists() for marker in PROJECT_MARKERS):
            return candidate
    return start


def default_config() -> dict[str, Any]:
    return {
        "schema_version": CONFIG_SCHEMA_V1,
        "role_path_marker": DEFAULT_ROLE_PATH_MARKER,
        "state_dir": DEFAULT_STATE_DIR,
        "termination_timeout_seconds": DEFAULT_TERMINATION_TIMEOUT_SECONDS,
    }


def validate_config(config: dict[str, Any]) -> dict[str, Any]:
    """Validate config schema, marker and timeout constraints."""
    if not isinstance(config, dict):
        raise ConfigError("config must be object")
    schema_version = config.get("schema_version", CONFIG_SCHEMA_V1)
    if schema_version not in SUPPORTED_CONFIG_SCHEMAS:
        raise ConfigError("unsupported config schema_version")
    marker = config.get("role_path_marker", DEFAULT_ROLE_PATH_MARKER)
    if not isinstance(marker, str) or not marker.strip():
        raise ConfigError("role_path_marker must be non-empty string")
    state_dir = str(config.get("state_dir", DEFAULT_STATE_DIR)).strip() or DEFAULT_STATE_DIR
    if Path(state_dir).is_absolute() or ".." in Path(state_dir).parts:
        raise ConfigError("state_dir must be relative to the project root")
    timeout = config.get("termination_timeout_seconds", DEFAULT_TERMINATION_TIMEOUT_SECONDS)
    if timeout is not None:
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
            raise ConfigError("termination_timeout_seconds must be number or null")
        if timeout <= 0:
            raise ConfigError("termination_timeout_seconds must be positive")
        timeout = float(timeout)
    return {
        "schema_version": CONFIG_SCHEMA_V1,
        "role_path_marker": marker,
        "state_dir": state_dir,
        "termination_timeout_seconds": timeout,
    }


def _config_path(project_root: Path) -> Path:
    return project_root / CONFIG_FILENAME


def load_config(project_root: Path) -> FarmConfig:
    """Load project config from disk or fall back to defaults."""
    raw: Any = default_config()
    path = _config_path(project_root)
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except Exception as exc:
            logger.warning("Ignoring unreadable config %s: %s", path, exc)
            raw = default_config()
    try:
        validated = validate_config(raw)
    except ConfigError as exc:
        logger.warning("Ignoring invalid config %s: %s", path, exc)
        validated = default_config()
    return FarmConfig(
        project_root=project_root,
        role_path_marker=validated["role_path_marker"],
        state_dir=validated["state_dir"],
        termination_timeout_seconds=validated["termination_timeout_seconds"],
    )


def save_config(project_root: Path, config: dict[str, Any]) -> dict[str, Any]:
    """Validate and persist project config to disk."""
    validated = validate_config(config)
    path = _config_path(project_root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(validated, indent=2), encoding="utf-8")
    return validated
