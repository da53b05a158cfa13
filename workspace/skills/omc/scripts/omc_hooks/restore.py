"""Session-start re-announcement of active modes."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from . import messages
from .counter import count_incomplete_tasks, count_project_todos
from .gate import locate
from .records import STATEFUL_MODES
from .store import Scopes

logger = logging.getLogger(__name__)


def restore_blocks(
    scopes: Scopes,
    session_id: str,
    now: datetime,
    stale_after_minutes: int = 0,
    modes: Sequence[str] = STATEFUL_MODES,
) -> list[str]:
    blocks = []
    for mode in modes:
        found = locate(scopes, mode, session_id, now, stale_after_minutes)
        if found is None:
            continue
        logger.debug("restoring %s from %s scope", mode, found.scope)
        blocks.append(messages.restore_block(found.record))
    return blocks


def pending_count(cwd: Path, home: Path, session_id: str) -> int:
    return count_project_todos(cwd) + count_incomplete_tasks(session_id, home)


def build_session_context(
    cwd: Path,
    home: Path,
    session_id: str,
    collaborator_texts: Sequence[str] = (),
    stale_after_minutes: int = 0,
    now: datetime | None = None,
) -> str | None:
    """Join collaborator text, mode announcements and the pending notice.

    Collaborator text is opaque and goes first, unmodified. ``None`` means
    there is nothing to add to the session.
    """
    moment = now or datetime.now(timezone.utc)
    parts = [text for text in collaborator_texts if text]
    parts.extend(restore_blocks(Scopes.for_paths(cwd, home), session_id, moment, stale_after_minutes))
    pending = pending_count(cwd, home, session_id)
    if pending > 0:
        parts.append(messages.pending_items(pending))
    if not parts:
        return None
    return "\n".join(parts)
