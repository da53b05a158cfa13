#!/usr/bin/env python3
"""End-to-end tests for the omc hook protocol."""

from __future__ import annotations

import io
import json
import os
import subprocess
import sys
import time
from pathlib import Path

import pytest

SCRIPTS = Path(__file__).resolve().parent.parent / "skills" / "omc" / "scripts"
OMC_PATH = SCRIPTS / "omc.py"
sys.path.insert(0, str(SCRIPTS))

from omc_hooks import engine, hookio

HOST_ENV_KEYS = ("CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS", "OMC_TEAM_ENABLED", "OMC_STDIN_TIMEOUT", "OMC_MAX_ITERATIONS")


def hook_env(home: Path, **extra: str) -> dict[str, str]:
    env = dict(os.environ)
    for key in HOST_ENV_KEYS:
        env.pop(key, None)
    env["HOME"] = str(home)
    env.update(extra)
    return env


def run_hook(command: str, home: Path, payload: object = None, raw: str | None = None, **env: str) -> dict:
    text = raw if raw is not None else json.dumps(payload or {})
    proc = subprocess.run(
        [sys.executable, str(OMC_PATH), "--home", str(home), command],
        input=text,
        capture_output=True,
        text=True,
        timeout=30,
        env=hook_env(home, **env),
        check=False,
    )
    assert proc.returncode == 0, proc.stderr
    return json.loads(proc.stdout)


def state_path(root: Path, mode: str) -> Path:
    return root / ".omc" / "state" / f"{mode}-state.json"


def read_state(root: Path, mode: str) -> dict:
    return json.loads(state_path(root, mode).read_text(encoding="utf-8"))


def write_json(path: Path, data: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


@pytest.fixture()
def dirs(tmp_path: Path) -> tuple[Path, Path]:
    project = tmp_path / "project"
    home = tmp_path / "home"
    project.mkdir()
    home.mkdir()
    return project, home


def test_ultrawork_prompt_activates_state(dirs: tuple[Path, Path]) -> None:
    project, home = dirs
    output = run_hook(
        "keyword-detect",
        home,
        {"prompt": "ultrawork please refactor the parser", "cwd": str(project), "session_id": "s1"},
    )
    assert output["continue"] is True
    assert "[MAGIC KEYWORD: ULTRAWORK]" in output["additionalContext"]
    state = read_state(project, "ultrawork")
    assert state["active"] is True
    assert state["reinforcement_count"] == 0
    assert state["original_prompt"] == "ultrawork please refactor the parser"
    assert state["session_id"] == "s1"


def test_ralph_brings_ultrawork_and_links_team(dirs: tuple[Path, Path]) -> None:
    project, home = dirs
    output = run_hook(
        "keyword-detect",
        home,
        {"prompt": "ralph with a coordinated team", "cwd": str(project)},
        OMC_TEAM_ENABLED="1",
    )
    assert "[MAGIC KEYWORDS DETECTED: RALPH, TEAM]" in output["additionalContext"]
    ralph = read_state(project, "ralph")
    assert (ralph["iteration"], ralph["max_iterations"]) == (1, 10)
    assert ralph["linked_team"] is True
    assert read_state(project, "team")["linked_ralph"] is True
    assert read_state(project, "ultrawork")["active"] is True


def test_ecomode_suppresses_ultrawork_companion(dirs: tuple[Path, Path]) -> None:
    project, home = dirs
    run_hook("keyword-detect", home, {"prompt": "ralph on a budget", "cwd": str(project)})
    assert state_path(project, "ralph").exists()
    assert state_path(project, "ecomode").exists()
    assert not state_path(project, "ultrawork").exists()


def test_cancel_clears_both_scopes(dirs: tuple[Path, Path]) -> None:
    project, home = dirs
    write_json(state_path(project, "ultrawork"), {"active": True, "original_prompt": "x"})
    write_json(state_path(project, "swarm"), {"active": True})
    write_json(state_path(home, "ralph"), {"active": True, "iteration": 2})
    output = run_hook("keyword-detect", home, {"prompt": "cancelomc", "cwd": str(project)})
    assert "Skill: oh-my-claudecode:cancel" in output["additionalContext"]
    assert not state_path(project, "ultrawork").exists()
    assert not state_path(project, "swarm").exists()
    assert not state_path(home, "ralph").exists()


def test_plain_prompt_is_a_no_op(dirs: tuple[Path, Path]) -> None:
    project, home = dirs
    assert run_hook("keyword-detect", home, {"prompt": "fix the login bug", "cwd": str(project)}) == {"continue": True}
    assert not (project / ".omc").exists()


@pytest.mark.parametrize("command", ["keyword-detect", "persistent-mode", "session-start"])
@pytest.mark.parametrize("raw", ["", "{{{", "[1, 2]", "null"])
def test_malformed_input_is_allowed(dirs: tuple[Path, Path], command: str, raw: str) -> None:
    project, home = dirs
    proc = subprocess.run(
        [sys.executable, str(OMC_PATH), "--home", str(home), command],
        input=raw,
        capture_output=True,
        text=True,
        timeout=30,
        cwd=str(project),
        env=hook_env(home),
        check=False,
    )
    assert proc.returncode == 0, proc.stderr
    assert json.loads(proc.stdout) == {"continue": True}


def test_stop_advances_ralph_and_respects_user_stop(dirs: tuple[Path, Path]) -> None:
    project, home = dirs
    write_json(state_path(project, "ralph"), {"active": True, "original_prompt": "ship", "iteration": 3, "max_iterations": 10})

    output = run_hook("persistent-mode", home, {"cwd": str(project), "user_requested": True})
    assert output == {"continue": True}
    assert read_state(project, "ralph")["iteration"] == 3

    output = run_hook("persistent-mode", home, {"cwd": str(project), "stopReason": "end_turn"})
    assert output["continue"] is False
    assert "4/10" in output["reason"]
    assert read_state(project, "ralph")["iteration"] == 4


def test_stop_reports_pending_todos_then_allows(dirs: tuple[Path, Path]) -> None:
    project, home = dirs
    todos = project / ".claude" / "todos.json"
    write_json(todos, {"todos": [{"id": "a", "status": "pending"}, {"id": "b", "status": "in_progress"}]})
    output = run_hook("persistent-mode", home, {"directory": str(project)})
    assert output["continue"] is False
    assert "(2 remaining)" in output["reason"]

    write_json(todos, {"todos": [{"id": "a", "status": "completed"}, {"id": "b", "status": "cancelled"}]})
    assert run_hook("persistent-mode", home, {"directory": str(project)}) == {"continue": True}


def test_unclosed_stdin_times_out_to_allow(dirs: tuple[Path, Path]) -> None:
    project, home = dirs
    started = time.monotonic()
    proc = subprocess.Popen(
        [sys.executable, str(OMC_PATH), "--home", str(home), "--cwd", str(project), "persistent-mode"],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env=hook_env(home, OMC_STDIN_TIMEOUT="0.5"),
    )
    try:
        proc.wait(timeout=20)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()
        pytest.fail("hook did not give up on an unclosed stdin")
    output = proc.stdout.read()
    proc.stdin.close()
    proc.stdout.close()
    proc.stderr.close()
    assert proc.returncode == 0
    assert json.loads(output) == {"continue": True}
    assert time.monotonic() - started < 20


def test_session_start_restores_modes(dirs: tuple[Path, Path]) -> None:
    project, home = dirs
    write_json(state_path(home, "ultrawork"), {"active": True, "original_prompt": "refactor", "started_at": "2026-01-01T00:00:00Z"})
    output = run_hook("session-start", home, {"cwd": str(project), "session_id": "s1"})
    assert "[ULTRAWORK MODE RESTORED]" in output["additionalContext"]
    assert "Original task: refactor" in output["additionalContext"]


def test_session_start_prepends_collaborator_output(dirs: tuple[Path, Path]) -> None:
    project, home = dirs
    script = project / "notice.py"
    script.write_text("print('omc 9.9 is available')\n", encoding="utf-8")
    config = project / ".omc" / "config.yaml"
    config.parent.mkdir(parents=True)
    config.write_text(
        "collaborators:\n  timeout_seconds: 20\n  update_check: ["
        + json.dumps(sys.executable)
        + ", "
        + json.dumps(str(script))
        + "]\n",
        encoding="utf-8",
    )
    write_json(state_path(project, "autopilot"), {"active": True, "original_prompt": "build"})
    output = run_hook("session-start", home, {"cwd": str(project)})
    assert output["additionalContext"].startswith("omc 9.9 is available\n")
    assert "[AUTOPILOT MODE RESTORED]" in output["additionalContext"]


def parse(argv: list[str]):
    return engine.build_parser().parse_args(argv)


def test_in_process_hook_uses_injected_stdin(dirs: tuple[Path, Path], monkeypatch: pytest.MonkeyPatch) -> None:
    project, home = dirs
    monkeypatch.chdir(project)
    for key in HOST_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    args = parse(["--home", str(home), "keyword-detect"])
    payload = {"parts": [{"type": "text", "text": "tdd"}, {"type": "image"}], "cwd": str(project)}
    output = engine.run_hook(args, stdin=io.StringIO(json.dumps(payload)))
    assert "Skill: oh-my-claudecode:tdd" in output["additionalContext"]


def test_hook_failures_resolve_to_allow(dirs: tuple[Path, Path], monkeypatch: pytest.MonkeyPatch) -> None:
    project, home = dirs
    monkeypatch.chdir(project)

    def explode(*_args, **_kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(engine.gate, "run_stop", explode)
    args = parse(["--home", str(home), "persistent-mode"])
    assert engine.run_hook(args, stdin=io.StringIO("{}")) == {"continue": True}


def test_verification_commands(dirs: tuple[Path, Path], capsys: pytest.CaptureFixture[str]) -> None:
    project, home = dirs
    base = ["--home", str(home), "--cwd", str(project)]

    assert engine.main([*base, "verify-start", "--claim", "done"]) == 1
    assert json.loads(capsys.readouterr().out)["status"] == "error"

    write_json(state_path(project, "ralph"), {"active": True, "original_prompt": "ship", "iteration": 2})
    assert engine.main([*base, "verify-start", "--claim", "all green"]) == 0
    started = json.loads(capsys.readouterr().out)
    assert started["verification"]["pending"] is True

    assert engine.main([*base, "verify-record", "--rejected", "--feedback", "flaky test"]) == 0
    rejected = json.loads(capsys.readouterr().out)
    assert rejected["verification"]["oracle_feedback"] == "flaky test"

    assert engine.main([*base, "verify-record", "--approved"]) == 0
    assert json.loads(capsys.readouterr().out)["verification"]["pending"] is False


def test_state_commands(dirs: tuple[Path, Path], capsys: pytest.CaptureFixture[str]) -> None:
    project, home = dirs
    base = ["--home", str(home), "--cwd", str(project)]
    write_json(state_path(project, "ralph"), {"active": True, "iteration": 2})
    write_json(state_path(home, "ultrawork"), {"active": True})

    assert engine.main([*base, "state-show"]) == 0
    shown = json.loads(capsys.readouterr().out)["states"]
    assert set(shown["project"]) == {"ralph"}
    assert set(shown["global"]) == {"ultrawork"}

    assert engine.main([*base, "state-clear", "--mode", "ralph"]) == 0
    assert json.loads(capsys.readouterr().out)["removed"] == ["project:ralph"]
    assert state_path(home, "ultrawork").exists()


@pytest.mark.parametrize(
    ("data", "expected"),
    [
        ({"user_requested": False, "userRequested": True}, True),
        ({"user_requested": "yes"}, True),
        ({"userRequested": 0}, False),
        ({}, False),
    ],
)
def test_user_requested_aliases_are_combined(tmp_path: Path, data: dict, expected: bool) -> None:
    assert hookio.stop_event(data, tmp_path, "s1").user_requested is expected


def test_verify_record_reads_oracle_output(dirs: tuple[Path, Path], capsys: pytest.CaptureFixture[str]) -> None:
    project, home = dirs
    base = ["--home", str(home), "--cwd", str(project)]
    write_json(state_path(project, "ralph"), {"active": True, "original_prompt": "ship", "iteration": 2})
    assert engine.main([*base, "verify-start", "--claim", "done"]) == 0
    capsys.readouterr()

    assert engine.main([*base, "verify-record", "--oracle-output", "Eviction is untested."]) == 0
    rejected = json.loads(capsys.readouterr().out)
    assert rejected["approved"] is False
    assert rejected["verification"]["oracle_feedback"] == "Eviction is untested."
    assert rejected["verification"]["pending"] is True

    approval = "All checks pass. <oracle-approved>VERIFIED_COMPLETE</oracle-approved>"
    assert engine.main([*base, "verify-record", "--oracle-output", approval]) == 0
    approved = json.loads(capsys.readouterr().out)
    assert approved["approved"] is True
    assert approved["verification"]["pending"] is False
