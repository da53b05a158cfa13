"""Hook protocol: one JSON document in on stdin, one JSON document out.

Input field names vary between host versions, so every accessor accepts
the known aliases. Anything unparseable degrades to an empty document.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
from pathlib import Path
from typing import Any, TextIO

from .gate import StopEvent

logger = logging.getLogger(__name__)

CWD_KEYS = ("cwd", "directory")
SESSION_KEYS = ("session_id", "sessionId", "sessionid")
STOP_REASON_KEYS = ("stop_reason", "stopReason")
END_TURN_KEYS = ("end_turn_reason", "endTurnReason")
USER_REQUESTED_KEYS = ("user_requested", "userRequested")
TRUTHY = ("1", "true", "yes")
READ_CHUNK_BYTES = 65536


def _read_fd(fd: int) -> str:
    # Raw reads hold no buffered-stream lock, so an abandoned reader cannot
    # block interpreter shutdown.
    chunks: list[bytes] = []
    while True:
        chunk = os.read(fd, READ_CHUNK_BYTES)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks).decode("utf-8", errors="replace")


def read_stdin(timeout: float, stream: TextIO | None = None) -> str:
    """Read the whole input on a worker thread, giving up after ``timeout``.

    A host that never closes stdin must not hang the hook; past the deadline
    the input resolves to empty and the abandoned daemon thread dies with
    the process. Without ``stream`` the process's stdin descriptor is read.
    """
    chunks: list[str] = []

    def _reader() -> None:
        try:
            if stream is not None:
                chunks.append(stream.read())
            else:
                chunks.append(_read_fd(sys.stdin.fileno()))
        except (AttributeError, OSError, ValueError) as error:
            logger.debug("stdin read failed: %s", error)

    worker = threading.Thread(target=_reader, name="omc-stdin", daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        logger.warning("stdin not closed within %.1fs; treating input as empty", timeout)
        return ""
    return "".join(chunks)


def parse_input(raw: str) -> dict[str, Any]:
    if not raw or not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError as error:
        logger.debug("malformed hook input: %s", error)
        return {}
    if not isinstance(data, dict):
        logger.debug("hook input is not an object")
        return {}
    return data


def first_text(data: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def extract_prompt(data: dict[str, Any]) -> str:
    prompt = data.get("prompt")
    if isinstance(prompt, str) and prompt:
        return prompt
    message = data.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str) and message["content"]:
        return message["content"]
    parts = data.get("parts")
    if isinstance(parts, list):
        return " ".join(
            part["text"]
            for part in parts
            if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str)
        )
    return ""


def event_cwd(data: dict[str, Any], fallback: Path) -> Path:
    value = first_text(data, CWD_KEYS)
    return Path(value) if value else fallback


def event_session_id(data: dict[str, Any]) -> str:
    return first_text(data, SESSION_KEYS)


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return isinstance(value, str) and value.strip().lower() in TRUTHY


def stop_event(data: dict[str, Any], cwd: Path, session_id: str) -> StopEvent:
    requested = any(_flag(data.get(key)) for key in USER_REQUESTED_KEYS)
    return StopEvent(
        cwd=cwd,
        session_id=session_id,
        stop_reason=first_text(data, STOP_REASON_KEYS),
        end_turn_reason=first_text(data, END_TURN_KEYS),
        user_requested=requested,
    )


def allow() -> dict[str, Any]:
    return {"continue": True}


def with_context(text: str | None) -> dict[str, Any]:
    if not text:
        return allow()
    return {"continue": True, "additionalContext": text}


def block(reason: str) -> dict[str, Any]:
    return {"continue": False, "reason": reason}


def emit(document: dict[str, Any], stream: TextIO | None = None) -> None:
    target = stream if stream is not None else sys.stdout
    target.write(json.dumps(document, ensure_ascii=True) + "\n")
    target.flush()
