"""Static guardrails for the omc_hooks package."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

MAX_MODULE_LINES = 400


@dataclass(frozen=True)
class ModuleMetric:
    path: Path
    line_count: int


def package_root() -> Path:
    return Path(__file__).resolve().parent


def module_metrics(root: Path) -> list[ModuleMetric]:
    metrics: list[ModuleMetric] = []
    for path in sorted(root.rglob("*.py")):
        if path.name == "__init__.py":
            continue
        with path.open("r", encoding="utf-8") as handle:
            line_count = sum(1 for _ in handle)
        metrics.append(ModuleMetric(path=path, line_count=line_count))
    return metrics


def check_module_size_limits(root: Path | None = None) -> list[str]:
    violations: list[str] = []
    for metric in module_metrics(root or package_root()):
        if metric.line_count > MAX_MODULE_LINES:
            violations.append(f"{metric.path}: {metric.line_count} lines > {MAX_MODULE_LINES}")
    return violations


def missing_templates(names: list[str]) -> list[str]:
    root = package_root() / "templates"
    return [name for name in names if not (root / f"{name}.md").exists()]
