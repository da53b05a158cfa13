#!/usr/bin/env python3
"""CLI entrypoint for omc_hooks guardrail checks (``python -m omc_hooks.check_guardrails``)."""

from __future__ import annotations

from .guardrails import check_module_size_limits, missing_templates
from .lazy_loader import available_templates

REQUIRED_TEMPLATES = [
    "ultrathink",
    "skill-invocation",
    "skill-block",
    "multi-skill-invocation",
    "delegation",
    "combined",
    "ralph-verification",
    "ralph-continuation",
    "ultrawork-persistence",
    "todo-continuation",
    "restore-ralph",
    "restore-ultrawork",
    "restore-mode",
    "pending-items",
]


def main() -> int:
    violations = check_module_size_limits()
    violations.extend(f"missing template: {name}" for name in missing_templates(REQUIRED_TEMPLATES))
    if violations:
        for violation in violations:
            print(violation)
        return 1
    print(f"ok ({len(available_templates())} templates)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
