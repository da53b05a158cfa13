"""External text providers consulted at session start.

Two optional collaborators are configured as commands: an update check and
a priority-context source. Each receives the hook input on stdin and the
session coordinates in its environment; whatever it prints is passed on
verbatim. A missing, failing, or slow command contributes nothing.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Sequence

from .config import HookConfig

logger = logging.getLogger(__name__)

SESSION_ENV = "OMC_SESSION_ID"
CWD_ENV = "OMC_CWD"


def call_collaborator(
    command: Sequence[str] | None,
    payload: dict[str, Any],
    cwd: Path,
    timeout: float,
) -> str | None:
    if not command:
        return None
    if shutil.which(command[0]) is None:
        logger.debug("collaborator %s not found on PATH", command[0])
        return None
    env = dict(os.environ)
    env[SESSION_ENV] = str(payload.get("session_id") or "")
    env[CWD_ENV] = str(cwd)
    try:
        result = subprocess.run(
            list(command),
            input=json.dumps(payload, ensure_ascii=True),
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=str(cwd) if cwd.is_dir() else None,
            env=env,
        )
    except subprocess.TimeoutExpired:
        logger.warning("collaborator %s timed out after %.1fs", command[0], timeout)
        return None
    except OSError as error:
        logger.warning("collaborator %s failed to start: %s", command[0], error)
        return None
    if result.returncode != 0:
        logger.debug("collaborator %s exited %d: %s", command[0], result.returncode, result.stderr.strip())
        return None
    text = result.stdout.strip()
    return text or None


def session_start_texts(config: HookConfig, payload: dict[str, Any], cwd: Path) -> list[str]:
    """Update-check text first, then priority context."""
    texts = []
    for command in (config.update_check_command, config.priority_context_command):
        text = call_collaborator(command, payload, cwd, config.collaborator_timeout_seconds)
        if text:
            texts.append(text)
    return texts
