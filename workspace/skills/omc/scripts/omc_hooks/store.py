"""Durable per-mode state at project and global scope.

Layout: ``<root>/state/<mode>-state.json`` where ``<root>`` is
``<project>/.omc`` or ``<home>/.omc``. Reads never raise, writes are
best-effort, and every write goes through a temp file plus ``os.replace``
so an overlapping hook invocation sees either the old or the new document.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .records import CANCELLABLE_MODES, ModeState, RecordError, parse_mode_state

logger = logging.getLogger(__name__)

PROJECT = "project"
GLOBAL = "global"
STATE_DIRNAME = "state"
OMC_DIRNAME = ".omc"


def load_json(path: Path, default: Any = None) -> Any:
    """Decode a JSON file, mapping every failure to ``default``."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return default
    except (OSError, UnicodeDecodeError, ValueError) as error:
        logger.debug("unreadable json %s: %s", path, error)
        return default


def atomic_write_json(path: Path, data: Any) -> None:
    """Replace ``path`` with ``data`` without exposing a partial document."""
    path.parent.mkdir(parents=True, exist_ok=True)
    rendered = json.dumps(data, indent=2, ensure_ascii=True) + "\n"
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(rendered)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


@dataclass(frozen=True)
class StateStore:
    scope: str
    root: Path

    @classmethod
    def project(cls, cwd: Path) -> "StateStore":
        return cls(scope=PROJECT, root=cwd / OMC_DIRNAME / STATE_DIRNAME)

    @classmethod
    def global_(cls, home: Path) -> "StateStore":
        return cls(scope=GLOBAL, root=home / OMC_DIRNAME / STATE_DIRNAME)

    def path_for(self, mode: str) -> Path:
        return self.root / f"{mode}-state.json"

    def read(self, mode: str) -> ModeState | None:
        path = self.path_for(mode)
        raw = load_json(path)
        if raw is None:
            return None
        try:
            return parse_mode_state(mode, raw)
        except RecordError as error:
            logger.debug("ignoring malformed %s state at %s: %s", mode, path, error)
            return None

    def write(self, mode: str, record: ModeState) -> bool:
        path = self.path_for(mode)
        try:
            atomic_write_json(path, record.to_dict())
        except (OSError, TypeError, ValueError) as error:
            logger.warning("could not persist %s state to %s: %s", mode, path, error)
            return False
        return True

    def delete(self, mode: str) -> bool:
        """Remove a mode's state; True when a file was actually removed."""
        path = self.path_for(mode)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as error:
            logger.warning("could not remove %s: %s", path, error)
            return False
        return True


@dataclass(frozen=True)
class Scopes:
    """Project store first, global store second."""

    project: StateStore
    global_: StateStore

    @classmethod
    def for_paths(cls, cwd: Path, home: Path) -> "Scopes":
        return cls(project=StateStore.project(cwd), global_=StateStore.global_(home))

    def stores(self) -> tuple[StateStore, StateStore]:
        return (self.project, self.global_)

    def by_scope(self, scope: str) -> StateStore:
        return self.project if scope == PROJECT else self.global_

    def find_active(self, mode: str) -> tuple[StateStore, ModeState] | None:
        for store in self.stores():
            record = store.read(mode)
            if record is not None and record.active:
                return store, record
        return None

    def clear(self, modes: Iterable[str] = CANCELLABLE_MODES) -> list[str]:
        removed: list[str] = []
        for mode in modes:
            for store in self.stores():
                if store.delete(mode):
                    removed.append(f"{store.scope}:{mode}")
        return removed
