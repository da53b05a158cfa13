#!/usr/bin/env python3
"""Replay hook cases and compare against a captured baseline."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from .capture_baseline import run_in_sandbox


def _pick(data: dict[str, Any], keys: list[str]) -> dict[str, Any]:
    return {key: data.get(key) for key in keys}


def _drop(data: dict[str, Any], keys: list[str]) -> dict[str, Any]:
    filtered = dict(data)
    for key in keys:
        filtered.pop(key, None)
    return filtered


def compare_case(case: dict[str, Any], expected: dict[str, Any] | None, current: dict[str, Any]) -> str | None:
    case_id = case["id"]
    if expected is None:
        return f"{case_id}: missing baseline record"

    compare_keys = case.get("compare_keys") or []
    ignore_keys = case.get("ignore_keys") or []
    expected_stdout = expected.get("stdout") if isinstance(expected.get("stdout"), dict) else {}
    current_stdout = current.get("stdout") if isinstance(current.get("stdout"), dict) else {}

    if compare_keys:
        expected_stdout = _pick(expected_stdout, compare_keys)
        current_stdout = _pick(current_stdout, compare_keys)
    if ignore_keys:
        expected_stdout = _drop(expected_stdout, ignore_keys)
        current_stdout = _drop(current_stdout, ignore_keys)

    if expected.get("exit_code") != current.get("exit_code"):
        return f"{case_id}: exit_code expected={expected.get('exit_code')} current={current.get('exit_code')}"
    if expected_stdout != current_stdout:
        return (
            f"{case_id}: stdout mismatch expected={json.dumps(expected_stdout, ensure_ascii=True)} "
            f"current={json.dumps(current_stdout, ensure_ascii=True)}"
        )
    for marker in case.get("expect_contains") or []:
        text = json.dumps(current.get("stdout"), ensure_ascii=True)
        if marker not in text:
            return f"{case_id}: output lacks {marker!r}"
    return None


def replay(cases: list[dict[str, Any]], baseline: dict[str, Any]) -> list[str]:
    failures: list[str] = []
    for case in cases:
        expected = baseline.get(case["id"])
        current = run_in_sandbox(case) if expected is not None else {}
        failure = compare_case(case, expected, current)
        if failure:
            failures.append(failure)
    return failures


def main() -> int:
    parser = argparse.ArgumentParser(description="Run shadow replay against captured baseline")
    parser.add_argument("--cases", required=True, help="Path to replay cases JSON")
    parser.add_argument("--baseline", required=True, help="Path to captured baseline JSON")
    args = parser.parse_args()

    cases = json.loads(Path(args.cases).resolve().read_text(encoding="utf-8"))
    baseline = json.loads(Path(args.baseline).resolve().read_text(encoding="utf-8"))

    failures = replay(cases, baseline)
    if failures:
        for failure in failures:
            print(failure)
        return 1

    print("ok")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
