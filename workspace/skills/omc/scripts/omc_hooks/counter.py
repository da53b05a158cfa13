"""Incomplete-work counting across task and todo files.

Tasks come from the host's per-session task directory; todos come from the
global todo directory plus two project files. A session id that does not
match ``SESSION_ID_PATTERN`` never reaches the filesystem: the task count
is forced to zero instead.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .store import load_json

logger = logging.getLogger(__name__)

SESSION_ID_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]{0,255}")
TASK_LOCK_FILENAME = ".lock"
INCOMPLETE_TASK_STATUSES = ("pending", "in_progress")
TERMINAL_TODO_STATUSES = ("completed", "cancelled")
TASK_LABEL = "Tasks"
TODO_LABEL = "todos"


@dataclass(frozen=True)
class Counts:
    task_count: int = 0
    todo_count: int = 0

    @property
    def total(self) -> int:
        return self.task_count + self.todo_count

    @property
    def label(self) -> str:
        # Task-system wording wins whenever it contributes.
        return TASK_LABEL if self.task_count > 0 else TODO_LABEL


def is_valid_session_id(session_id: Any) -> bool:
    return isinstance(session_id, str) and SESSION_ID_PATTERN.fullmatch(session_id) is not None


def task_dir(home: Path, session_id: str) -> Path:
    return home / ".claude" / "tasks" / session_id


def global_todo_dir(home: Path) -> Path:
    return home / ".claude" / "todos"


def project_todo_paths(cwd: Path) -> list[Path]:
    return [cwd / ".omc" / "todos.json", cwd / ".claude" / "todos.json"]


def _json_files(directory: Path, exclude: Iterable[str] = ()) -> list[Path]:
    skipped = set(exclude)
    try:
        entries = list(directory.iterdir())
    except OSError:
        return []
    return sorted(path for path in entries if path.suffix == ".json" and path.name not in skipped and path.is_file())


def count_incomplete_tasks(session_id: Any, home: Path) -> int:
    if not is_valid_session_id(session_id):
        return 0
    count = 0
    for path in _json_files(task_dir(home, session_id), exclude=(TASK_LOCK_FILENAME,)):
        task = load_json(path)
        if isinstance(task, dict) and task.get("status") in INCOMPLETE_TASK_STATUSES:
            count += 1
    return count


def todo_entries(document: Any) -> list[Any]:
    """Accept a bare list or a ``{"todos": [...]}`` wrapper."""
    if isinstance(document, list):
        return document
    if isinstance(document, dict) and isinstance(document.get("todos"), list):
        return document["todos"]
    return []


def count_incomplete_in_todo_file(path: Path) -> int:
    entries = todo_entries(load_json(path))
    return sum(
        1 for entry in entries if isinstance(entry, dict) and entry.get("status") not in TERMINAL_TODO_STATUSES
    )


def count_project_todos(cwd: Path) -> int:
    return sum(count_incomplete_in_todo_file(path) for path in project_todo_paths(cwd))


def count_incomplete_todos(cwd: Path, home: Path) -> int:
    paths = _json_files(global_todo_dir(home)) + project_todo_paths(cwd)
    return sum(count_incomplete_in_todo_file(path) for path in paths)


def count_incomplete(session_id: Any, cwd: Path, home: Path) -> Counts:
    counts = Counts(
        task_count=count_incomplete_tasks(session_id, home),
        todo_count=count_incomplete_todos(cwd, home),
    )
    logger.debug("incomplete counts session=%r tasks=%d todos=%d", session_id, counts.task_count, counts.todo_count)
    return counts
