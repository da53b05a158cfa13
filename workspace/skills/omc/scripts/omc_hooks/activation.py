"""State changes triggered by a classified prompt."""

from __future__ import annotations

import logging
from typing import Sequence

from .config import HookConfig
from .keywords import ModeMatch
from .records import (
    CANCELLABLE_MODES,
    RALPH,
    REINFORCED_MODES,
    STATEFUL_MODES,
    ModeState,
    new_mode_state,
    now_iso,
    with_extras,
)
from .store import Scopes

logger = logging.getLogger(__name__)

TEAM = "team"
COMPANION_MODE = "ultrawork"


def modes_to_activate(resolved: Sequence[ModeMatch]) -> list[str]:
    """Stateful modes in resolved order, plus ultrawork riding along with ralph."""
    names = [match.name for match in resolved]
    targets = [name for name in names if name in STATEFUL_MODES]
    if RALPH in names and not any(name in names for name in REINFORCED_MODES):
        targets.append(COMPANION_MODE)
    return targets


def build_records(
    modes: Sequence[str],
    prompt: str,
    session_id: str,
    config: HookConfig,
) -> dict[str, ModeState]:
    stamp = now_iso()
    records = {
        mode: new_mode_state(
            mode,
            prompt,
            session_id or None,
            max_iterations=config.max_iterations,
            completion_promise=config.completion_promise,
            timestamp=stamp,
        )
        for mode in modes
    }
    if RALPH in records and TEAM in records:
        records[RALPH] = with_extras(records[RALPH], linked_team=True)
        records[TEAM] = with_extras(records[TEAM], linked_ralph=True)
    return records


def activate(
    scopes: Scopes,
    resolved: Sequence[ModeMatch],
    prompt: str,
    session_id: str,
    config: HookConfig,
) -> list[str]:
    """Write fresh project-scope records; returns the modes actually persisted."""
    written = []
    for mode, record in build_records(modes_to_activate(resolved), prompt, session_id, config).items():
        if scopes.project.write(mode, record):
            written.append(mode)
    if written:
        logger.debug("activated %s", ", ".join(written))
    return written


def cancel(scopes: Scopes) -> list[str]:
    removed = scopes.clear(CANCELLABLE_MODES)
    logger.debug("cancel removed %s", ", ".join(removed) or "nothing")
    return removed
