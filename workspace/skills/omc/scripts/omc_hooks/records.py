"""Typed mode-state records.

Every JSON document read from a state file is validated here into one of a
closed set of variants: a plain ``ModeState`` or a ``RalphState`` that may
embed a ``VerificationState``. Keys this module does not own are carried in
``extras`` and written back untouched.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any


RALPH = "ralph"
STATEFUL_MODES = ("ralph", "autopilot", "team", "ultrawork", "ecomode")
REINFORCED_MODES = ("ultrawork", "ecomode")
CANCELLABLE_MODES = ("ralph", "autopilot", "team", "ultrawork", "ecomode", "swarm", "pipeline")

DEFAULT_MAX_ITERATIONS = 10
DEFAULT_COMPLETION_PROMISE = "TASK_COMPLETE"
DEFAULT_MAX_VERIFICATION_ATTEMPTS = 3

MODE_FIELDS = (
    "active",
    "started_at",
    "original_prompt",
    "session_id",
    "reinforcement_count",
    "iteration",
    "max_iterations",
    "completion_promise",
    "last_checked_at",
)
LEGACY_PROMPT_KEY = "prompt"
VERIFICATION_KEY = "verification"


class RecordError(ValueError):
    """Raised when a document cannot be interpreted as a mode record."""


def now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class VerificationState:
    pending: bool = True
    verification_attempts: int = 0
    max_verification_attempts: int = DEFAULT_MAX_VERIFICATION_ATTEMPTS
    original_task: str = ""
    completion_claim: str = ""
    oracle_feedback: str | None = None
    requested_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "pending": self.pending,
            "verification_attempts": self.verification_attempts,
            "max_verification_attempts": self.max_verification_attempts,
            "original_task": self.original_task,
            "completion_claim": self.completion_claim,
        }
        if self.oracle_feedback:
            data["oracle_feedback"] = self.oracle_feedback
        if self.requested_at:
            data["requested_at"] = self.requested_at
        return data


@dataclass(frozen=True)
class ModeState:
    mode: str
    active: bool = True
    started_at: str | None = None
    original_prompt: str = ""
    session_id: str | None = None
    reinforcement_count: int = 0
    iteration: int = 0
    max_iterations: int = 0
    completion_promise: str | None = None
    last_checked_at: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def bound_to(self, session_id: str) -> bool:
        """Unbound states belong to every session."""
        return not self.session_id or self.session_id == session_id

    def is_stale(self, now: datetime, max_age_minutes: int) -> bool:
        if max_age_minutes <= 0:
            return False
        stamps = [stamp for stamp in (parse_timestamp(self.last_checked_at), parse_timestamp(self.started_at)) if stamp]
        if not stamps:
            return False
        return (now - max(stamps)).total_seconds() > max_age_minutes * 60

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extras)
        data.update(
            {
                "active": self.active,
                "started_at": self.started_at,
                "original_prompt": self.original_prompt,
                "reinforcement_count": self.reinforcement_count,
                "last_checked_at": self.last_checked_at,
            }
        )
        if self.session_id:
            data["session_id"] = self.session_id
        if self.max_iterations:
            data["iteration"] = self.iteration
            data["max_iterations"] = self.max_iterations
        if self.completion_promise:
            data["completion_promise"] = self.completion_promise
        return data


@dataclass(frozen=True)
class RalphState(ModeState):
    verification: VerificationState | None = None

    @property
    def verification_pending(self) -> bool:
        return self.verification is not None and self.verification.pending

    @property
    def promise(self) -> str:
        return self.completion_promise or DEFAULT_COMPLETION_PROMISE

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["iteration"] = self.iteration
        data["max_iterations"] = self.max_iterations
        data["completion_promise"] = self.promise
        if self.verification is not None:
            data[VERIFICATION_KEY] = self.verification.to_dict()
        else:
            data.pop(VERIFICATION_KEY, None)
        return data


def _int_field(raw: dict[str, Any], key: str, default: int, minimum: int = 0) -> int:
    value = raw.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RecordError(f"{key} must be a number, got {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise RecordError(f"{key} must be finite, got {value!r}")
    number = int(value)
    if number < minimum:
        raise RecordError(f"{key} must be >= {minimum}, got {value!r}")
    return number


def _str_field(raw: dict[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise RecordError(f"{key} must be a string, got {value!r}")
    return value


def parse_verification(raw: Any) -> VerificationState | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise RecordError("verification must be a mapping")
    return VerificationState(
        pending=bool(raw.get("pending", False)),
        verification_attempts=_int_field(raw, "verification_attempts", 0),
        max_verification_attempts=_int_field(
            raw, "max_verification_attempts", DEFAULT_MAX_VERIFICATION_ATTEMPTS, minimum=1
        ),
        original_task=_str_field(raw, "original_task") or "",
        completion_claim=_str_field(raw, "completion_claim") or "",
        oracle_feedback=_str_field(raw, "oracle_feedback") or _str_field(raw, "architect_feedback"),
        requested_at=_str_field(raw, "requested_at"),
    )


def parse_mode_state(mode: str, raw: Any) -> ModeState:
    """Validate a decoded state document.

    Raises ``RecordError`` for documents that cannot be a mode record; the
    store treats those exactly like a missing file.
    """
    if not isinstance(raw, dict):
        raise RecordError(f"{mode} state must be a mapping")
    if "active" not in raw:
        raise RecordError(f"{mode} state is missing 'active'")
    active = raw["active"]
    if not isinstance(active, bool):
        raise RecordError(f"{mode} state 'active' must be a boolean")

    prompt = _str_field(raw, "original_prompt")
    if prompt is None:
        prompt = _str_field(raw, LEGACY_PROMPT_KEY)
    extras = {
        key: value
        for key, value in raw.items()
        if key not in MODE_FIELDS and key not in (LEGACY_PROMPT_KEY, VERIFICATION_KEY)
    }
    common: dict[str, Any] = {
        "mode": mode,
        "active": active,
        "started_at": _str_field(raw, "started_at"),
        "original_prompt": prompt or "",
        "session_id": _str_field(raw, "session_id") or None,
        "reinforcement_count": _int_field(raw, "reinforcement_count", 0),
        "last_checked_at": _str_field(raw, "last_checked_at"),
        "extras": extras,
    }
    if mode == RALPH:
        return RalphState(
            # Zero counters read as unset.
            iteration=_int_field(raw, "iteration", 1) or 1,
            max_iterations=_int_field(raw, "max_iterations", DEFAULT_MAX_ITERATIONS) or DEFAULT_MAX_ITERATIONS,
            completion_promise=_str_field(raw, "completion_promise") or DEFAULT_COMPLETION_PROMISE,
            verification=parse_verification(raw.get(VERIFICATION_KEY)),
            **common,
        )
    if "max_iterations" in raw:
        common["iteration"] = _int_field(raw, "iteration", 0)
        common["max_iterations"] = _int_field(raw, "max_iterations", 0)
    common["completion_promise"] = _str_field(raw, "completion_promise")
    return ModeState(**common)


def new_mode_state(
    mode: str,
    prompt: str,
    session_id: str | None = None,
    *,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    completion_promise: str = DEFAULT_COMPLETION_PROMISE,
    timestamp: str | None = None,
) -> ModeState:
    stamp = timestamp or now_iso()
    common: dict[str, Any] = {
        "mode": mode,
        "active": True,
        "started_at": stamp,
        "original_prompt": prompt,
        "session_id": session_id or None,
        "reinforcement_count": 0,
        "last_checked_at": stamp,
    }
    if mode == RALPH:
        return RalphState(
            iteration=1,
            max_iterations=max_iterations,
            completion_promise=completion_promise,
            **common,
        )
    return ModeState(**common)


def with_extras(record: ModeState, **values: Any) -> ModeState:
    return replace(record, extras={**record.extras, **values})
