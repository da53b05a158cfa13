#!/usr/bin/env python3
"""Capture baseline outputs for representative omc hook replay cases.

A case names a subcommand ``argv``, an optional ``stdin`` document, and
optional ``files`` to seed before the run. Every string may use the
``{project}`` and ``{home}`` tokens, which expand to a fresh sandbox so a
replay never touches the real home directory.
"""

from __future__ import annotations

import argparse
import json
import os
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Any


def omc_script() -> Path:
    return Path(__file__).resolve().parents[1] / "omc.py"


def expand(value: Any, tokens: dict[str, str]) -> Any:
    if isinstance(value, str):
        for token, replacement in tokens.items():
            value = value.replace("{" + token + "}", replacement)
        return value
    if isinstance(value, list):
        return [expand(item, tokens) for item in value]
    if isinstance(value, dict):
        return {key: expand(item, tokens) for key, item in value.items()}
    return value


def seed_files(files: dict[str, Any], tokens: dict[str, str]) -> None:
    for raw_path, content in files.items():
        path = Path(expand(raw_path, tokens))
        path.parent.mkdir(parents=True, exist_ok=True)
        text = content if isinstance(content, str) else json.dumps(expand(content, tokens), indent=2)
        path.write_text(text, encoding="utf-8")


def run_case(case: dict[str, Any], sandbox: Path) -> dict[str, Any]:
    project = sandbox / "project"
    home = sandbox / "home"
    project.mkdir(parents=True, exist_ok=True)
    home.mkdir(parents=True, exist_ok=True)
    tokens = {"project": str(project), "home": str(home)}
    seed_files(case.get("files") or {}, tokens)

    stdin_doc = case.get("stdin")
    stdin_text = stdin_doc if isinstance(stdin_doc, str) else json.dumps(expand(stdin_doc or {}, tokens))
    env = dict(os.environ)
    env["HOME"] = str(home)
    env.pop("CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS", None)
    env.update(case.get("env") or {})

    cmd = [sys.executable, str(omc_script()), "--home", str(home), *expand(case["argv"], tokens)]
    proc = subprocess.run(
        cmd,
        input=stdin_text,
        capture_output=True,
        text=True,
        check=False,
        cwd=str(project),
        env=env,
        timeout=30,
    )
    payload: Any
    stdout = proc.stdout.strip()
    if stdout:
        try:
            payload = json.loads(stdout)
        except json.JSONDecodeError:
            payload = {"raw_stdout": stdout}
    else:
        payload = {}
    return {
        "exit_code": proc.returncode,
        "stdout": payload,
        "stderr": proc.stderr.strip(),
    }


def run_in_sandbox(case: dict[str, Any]) -> dict[str, Any]:
    with tempfile.TemporaryDirectory(prefix=f"omc-replay-{case['id']}-") as tmp:
        return run_case(case, Path(tmp))


def main() -> int:
    parser = argparse.ArgumentParser(description="Capture replay baseline")
    parser.add_argument("--cases", required=True, help="Path to JSON replay cases")
    parser.add_argument("--out", required=True, help="Output baseline JSON path")
    args = parser.parse_args()

    cases_path = Path(args.cases).resolve()
    out_path = Path(args.out).resolve()
    cases = json.loads(cases_path.read_text(encoding="utf-8"))

    baseline: dict[str, Any] = {}
    for case in cases:
        result = run_in_sandbox(case)
        # stderr carries sandbox paths and is never compared.
        result.pop("stderr", None)
        baseline[case["id"]] = result

    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(baseline, indent=2, ensure_ascii=True) + "\n", encoding="utf-8")
    print(str(out_path))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
