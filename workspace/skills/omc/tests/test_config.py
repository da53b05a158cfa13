from __future__ import annotations

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "scripts"))

from omc_hooks.config import HookConfig, load_config


def write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "p", tmp_path / "h", environ={})
    assert config == HookConfig()


def test_project_overrides_home_and_env_overrides_both(tmp_path: Path) -> None:
    cwd, home = tmp_path / "p", tmp_path / "h"
    write(home / ".omc" / "config.yaml", "skill_namespace: home-ns\nralph:\n  max_iterations: 4\n")
    write(cwd / ".omc" / "config.yaml", "ralph:\n  max_iterations: 6\nstdin_timeout_seconds: 1.5\n")

    config = load_config(cwd, home, environ={"OMC_MAX_ITERATIONS": "8"})
    assert config.skill_namespace == "home-ns"
    assert config.max_iterations == 8
    assert config.stdin_timeout_seconds == 1.5
    assert config.sources == (str(home / ".omc" / "config.yaml"), str(cwd / ".omc" / "config.yaml"), "env")


def test_bad_values_keep_previous_layer(tmp_path: Path) -> None:
    cwd, home = tmp_path / "p", tmp_path / "h"
    write(cwd / ".omc" / "config.yaml", "stdin_timeout_seconds: -3\nverification:\n  max_attempts: zero\n")
    config = load_config(cwd, home, environ={"OMC_STDIN_TIMEOUT": "soon"})
    assert config.stdin_timeout_seconds == 5.0
    assert config.max_verification_attempts == 3


def test_unreadable_yaml_is_ignored(tmp_path: Path) -> None:
    cwd, home = tmp_path / "p", tmp_path / "h"
    write(cwd / ".omc" / "config.yaml", "ralph: [unclosed\n")
    write(home / ".omc" / "config.yaml", "- just\n- a list\n")
    assert load_config(cwd, home, environ={}) == HookConfig()


def test_collaborator_commands(tmp_path: Path) -> None:
    cwd, home = tmp_path / "p", tmp_path / "h"
    write(
        cwd / ".omc" / "config.yaml",
        "collaborators:\n  update_check: omc-update --quiet\n  priority_context: [cat, notes.md]\n",
    )
    config = load_config(cwd, home, environ={})
    assert config.update_check_command == ("omc-update", "--quiet")
    assert config.priority_context_command == ("cat", "notes.md")


def test_team_feature_sources(tmp_path: Path) -> None:
    cwd, home = tmp_path / "p", tmp_path / "h"
    assert not load_config(cwd, home, environ={}).team_enabled
    assert load_config(cwd, home, environ={"CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS": "1"}).team_enabled
    assert load_config(cwd, home, environ={"OMC_TEAM_ENABLED": "true"}).team_enabled

    write(home / ".claude" / "settings.json", json.dumps({"env": {"CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS": "true"}}))
    assert load_config(cwd, home, environ={}).team_enabled
