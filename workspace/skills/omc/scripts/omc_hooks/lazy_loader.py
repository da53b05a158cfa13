"""Lazy loaders for advisory message templates.

A hook invocation renders at most a handful of messages, so each template is
read from disk only when a decision actually needs it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

FRONTMATTER_PATTERN = re.compile(r"^---\n(.*?)\n---\n?(.*)$", re.DOTALL)


class LazyLoadError(RuntimeError):
    """Raised when required lazy-load assets are missing."""


@dataclass(frozen=True)
class Template:
    name: str
    event: str
    body: str

    def render(self, **values: Any) -> str:
        try:
            return self.body.format(**values)
        except (KeyError, IndexError) as error:
            raise LazyLoadError(f"Template {self.name!r} needs value {error}") from error


def templates_root() -> Path:
    return Path(__file__).resolve().parent / "templates"


def _read_required(path: Path) -> str:
    if not path.exists():
        raise LazyLoadError(f"Missing lazy-load asset: {path}")
    return path.read_text(encoding="utf-8")


def split_frontmatter(text: str, source: str) -> tuple[dict[str, Any], str]:
    match = FRONTMATTER_PATTERN.match(text)
    if not match:
        raise LazyLoadError(f"Invalid frontmatter format in {source}")
    try:
        frontmatter = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as error:
        raise LazyLoadError(f"Unreadable frontmatter in {source}: {error}") from error
    if not isinstance(frontmatter, dict):
        raise LazyLoadError(f"Frontmatter must be a mapping in {source}")
    return frontmatter, match.group(2).strip("\n")


@lru_cache(maxsize=None)
def load_template(name: str) -> Template:
    path = templates_root() / f"{name}.md"
    frontmatter, body = split_frontmatter(_read_required(path), str(path))
    if frontmatter.get("name") != name:
        raise LazyLoadError(f"Template {path} declares name {frontmatter.get('name')!r}")
    return Template(name=name, event=str(frontmatter.get("event") or ""), body=body)


def render(name: str, **values: Any) -> str:
    return load_template(name).render(**values)


def available_templates() -> list[str]:
    return sorted(path.stem for path in templates_root().glob("*.md"))
