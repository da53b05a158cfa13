from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SCRIPTS = ROOT / "scripts"
OMC_PATH = SCRIPTS / "omc.py"
REPLAY = ROOT / "tests" / "replay"

sys.path.insert(0, str(SCRIPTS))

from omc_hooks import engine, guardrails, lazy_loader, logs, shadow_replay
from omc_hooks.check_guardrails import REQUIRED_TEMPLATES


def test_omc_entrypoint_is_thin() -> None:
    line_count = sum(1 for _ in OMC_PATH.open("r", encoding="utf-8"))
    assert line_count <= 40


def test_cli_contract_subcommands_stable() -> None:
    parser = engine.build_parser()
    subparsers_action = next(
        action for action in parser._actions if action.__class__.__name__ == "_SubParsersAction"
    )
    expected = {
        "keyword-detect",
        "persistent-mode",
        "session-start",
        "verify-start",
        "verify-record",
        "state-show",
        "state-clear",
    }
    assert set(subparsers_action.choices.keys()) == expected


def test_cli_contract_minimal_parse_for_all_subcommands() -> None:
    parser = engine.build_parser()
    cases = {
        "keyword-detect": ["keyword-detect"],
        "persistent-mode": ["--session-id", "s1", "persistent-mode"],
        "session-start": ["--cwd", "/tmp/project", "session-start"],
        "verify-start": ["verify-start", "--claim", "done"],
        "verify-record": ["verify-record", "--rejected", "--feedback", "missing tests"],
        "state-show": ["state-show", "--mode", "ralph"],
        "state-clear": ["state-clear"],
    }
    for command, argv in cases.items():
        args = parser.parse_args(argv)
        assert args.command == command
        assert args.hook is (command in engine.HOOK_COMMANDS)
    assert parser.parse_args(["verify-record", "--rejected"]).approved is False
    assert parser.parse_args(["verify-record", "--approved"]).approved is True
    oracle = parser.parse_args(["verify-record", "--oracle-output", "looks good"])
    assert (oracle.approved, oracle.oracle_output) == (False, "looks good")


def test_verify_record_requires_a_verdict() -> None:
    with pytest.raises(SystemExit):
        engine.build_parser().parse_args(["verify-record"])


def test_module_size_guardrail() -> None:
    assert guardrails.check_module_size_limits() == []


def test_module_size_guardrail_covers_every_module(tmp_path: Path) -> None:
    (tmp_path / "engine.py").write_text("x = 1\n" * (guardrails.MAX_MODULE_LINES + 1), encoding="utf-8")
    (tmp_path / "small.py").write_text("x = 1\n", encoding="utf-8")
    violations = guardrails.check_module_size_limits(tmp_path)
    assert len(violations) == 1
    assert "engine.py" in violations[0]


def test_logging_keeps_one_stderr_handler() -> None:
    root = logs.configure()
    logs.configure()
    plain = [handler for handler in root.handlers if type(handler) is logging.StreamHandler]
    assert len(plain) == 1
    assert plain[0].stream is sys.stderr
    assert root.propagate is False


def test_required_templates_exist_and_load() -> None:
    assert guardrails.missing_templates(REQUIRED_TEMPLATES) == []
    assert set(REQUIRED_TEMPLATES) <= set(lazy_loader.available_templates())
    for name in REQUIRED_TEMPLATES:
        template = lazy_loader.load_template(name)
        assert template.body
        assert template.event in ("prompt-submit", "stop", "session-start")


def test_missing_template_raises() -> None:
    with pytest.raises(lazy_loader.LazyLoadError):
        lazy_loader.load_template("does-not-exist")


def test_frontmatter_is_required() -> None:
    with pytest.raises(lazy_loader.LazyLoadError):
        lazy_loader.split_frontmatter("no frontmatter here", "inline")


def test_shadow_replay_matches_baseline() -> None:
    cases = json.loads((REPLAY / "cases.json").read_text(encoding="utf-8"))
    baseline = json.loads((REPLAY / "baseline.json").read_text(encoding="utf-8"))
    assert {case["id"] for case in cases} == set(baseline)
    assert shadow_replay.replay(cases, baseline) == []
