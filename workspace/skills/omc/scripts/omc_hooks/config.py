"""Layered hook configuration.

Defaults are overridden by ``<home>/.omc/config.yaml``, then by
``<cwd>/.omc/config.yaml``, then by environment variables. A bad value never
aborts a hook: it is reported and the previous layer's value is kept.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"
TEAM_FEATURE_ENV = "CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS"
TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class HookConfig:
    stdin_timeout_seconds: float = 5.0
    skill_namespace: str = "oh-my-claudecode"
    team_enabled: bool = False
    stale_after_minutes: int = 0
    max_iterations: int = 10
    completion_promise: str = "TASK_COMPLETE"
    max_verification_attempts: int = 3
    update_check_command: tuple[str, ...] | None = None
    priority_context_command: tuple[str, ...] | None = None
    collaborator_timeout_seconds: float = 2.0
    sources: tuple[str, ...] = field(default_factory=tuple)


def config_paths(cwd: Path, home: Path) -> list[Path]:
    return [home / ".omc" / CONFIG_FILENAME, cwd / ".omc" / CONFIG_FILENAME]


def read_yaml_mapping(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as error:
        logger.warning("ignoring unreadable config %s: %s", path, error)
        return {}
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        logger.warning("ignoring config %s: top level must be a mapping", path)
        return {}
    return raw


def _positive_float(value: Any, field_name: str, current: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning("%s must be a number, got %r", field_name, value)
        return current
    if number <= 0:
        logger.warning("%s must be positive, got %r", field_name, value)
        return current
    return number


def _non_negative_int(value: Any, field_name: str, current: int, minimum: int = 0) -> int:
    if isinstance(value, bool):
        logger.warning("%s must be an integer, got %r", field_name, value)
        return current
    try:
        number = int(value)
    except (TypeError, ValueError):
        logger.warning("%s must be an integer, got %r", field_name, value)
        return current
    if number < minimum:
        logger.warning("%s must be >= %d, got %r", field_name, minimum, value)
        return current
    return number


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY


def _text(value: Any, field_name: str, current: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        logger.warning("%s must be a non-empty string", field_name)
        return current
    return text


def _command(value: Any, field_name: str) -> tuple[str, ...] | None:
    if value is None:
        return None
    if isinstance(value, str):
        parts = value.split()
    elif isinstance(value, list) and all(isinstance(item, str) for item in value):
        parts = list(value)
    else:
        logger.warning("%s must be a command string or list of strings", field_name)
        return None
    return tuple(parts) or None


def apply_mapping(config: HookConfig, raw: dict[str, Any], source: str) -> HookConfig:
    updates: dict[str, Any] = {}
    if "stdin_timeout_seconds" in raw:
        updates["stdin_timeout_seconds"] = _positive_float(
            raw["stdin_timeout_seconds"], "stdin_timeout_seconds", config.stdin_timeout_seconds
        )
    if "skill_namespace" in raw:
        updates["skill_namespace"] = _text(raw["skill_namespace"], "skill_namespace", config.skill_namespace)
    if "team_enabled" in raw:
        updates["team_enabled"] = _flag(raw["team_enabled"])
    if "stale_after_minutes" in raw:
        updates["stale_after_minutes"] = _non_negative_int(
            raw["stale_after_minutes"], "stale_after_minutes", config.stale_after_minutes
        )

    ralph = raw.get("ralph")
    if isinstance(ralph, dict):
        if "max_iterations" in ralph:
            updates["max_iterations"] = _non_negative_int(
                ralph["max_iterations"], "ralph.max_iterations", config.max_iterations, minimum=1
            )
        if "completion_promise" in ralph:
            updates["completion_promise"] = _text(
                ralph["completion_promise"], "ralph.completion_promise", config.completion_promise
            )

    verification = raw.get("verification")
    if isinstance(verification, dict) and "max_attempts" in verification:
        updates["max_verification_attempts"] = _non_negative_int(
            verification["max_attempts"],
            "verification.max_attempts",
            config.max_verification_attempts,
            minimum=1,
        )

    collaborators = raw.get("collaborators")
    if isinstance(collaborators, dict):
        if "update_check" in collaborators:
            updates["update_check_command"] = _command(collaborators["update_check"], "collaborators.update_check")
        if "priority_context" in collaborators:
            updates["priority_context_command"] = _command(
                collaborators["priority_context"], "collaborators.priority_context"
            )
        if "timeout_seconds" in collaborators:
            updates["collaborator_timeout_seconds"] = _positive_float(
                collaborators["timeout_seconds"],
                "collaborators.timeout_seconds",
                config.collaborator_timeout_seconds,
            )

    return replace(config, sources=(*config.sources, source), **updates)


def apply_environment(config: HookConfig, environ: dict[str, str]) -> HookConfig:
    updates: dict[str, Any] = {}
    if environ.get("OMC_STDIN_TIMEOUT"):
        updates["stdin_timeout_seconds"] = _positive_float(
            environ["OMC_STDIN_TIMEOUT"], "OMC_STDIN_TIMEOUT", config.stdin_timeout_seconds
        )
    if environ.get("OMC_TEAM_ENABLED"):
        updates["team_enabled"] = _flag(environ["OMC_TEAM_ENABLED"])
    if environ.get("OMC_MAX_ITERATIONS"):
        updates["max_iterations"] = _non_negative_int(
            environ["OMC_MAX_ITERATIONS"], "OMC_MAX_ITERATIONS", config.max_iterations, minimum=1
        )
    if not updates:
        return config
    return replace(config, sources=(*config.sources, "env"), **updates)


def host_team_feature_enabled(home: Path, environ: dict[str, str]) -> bool:
    settings_path = home / ".claude" / "settings.json"
    try:
        settings = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        settings = None
    if isinstance(settings, dict) and isinstance(settings.get("env"), dict):
        if str(settings["env"].get(TEAM_FEATURE_ENV, "")).strip().lower() in ("1", "true"):
            return True
    return environ.get(TEAM_FEATURE_ENV, "").strip().lower() in ("1", "true")


def load_config(cwd: Path, home: Path, environ: dict[str, str] | None = None) -> HookConfig:
    env = dict(os.environ if environ is None else environ)
    config = HookConfig()
    for path in config_paths(cwd, home):
        raw = read_yaml_mapping(path)
        if raw:
            config = apply_mapping(config, raw, str(path))
    config = apply_environment(config, env)
    if not config.team_enabled and host_team_feature_enabled(home, env):
        config = replace(config, team_enabled=True)
    return config
