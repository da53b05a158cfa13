"""Stop-time continuation gate.

``decide`` is a pure priority chain over a snapshot of mode state and the
incomplete-work counts; ``apply`` persists the single mutation a decision
may carry. ``run_stop`` wires both to the filesystem.

Priority:
    P0 user stop or context exhaustion -> allow
    P1 active ralph -> verification block, or next iteration
    P2 active ultrawork/ecomode with incomplete work -> reinforcement
    P3 incomplete work -> todo continuation
    P4 allow
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from . import messages
from .counter import Counts, count_incomplete
from .records import RALPH, REINFORCED_MODES, ModeState, RalphState
from .store import Scopes

logger = logging.getLogger(__name__)

ABORT_EXACT = ("abort", "aborted", "cancel", "interrupt")
ABORT_SUBSTRINGS = ("user_cancel", "user_interrupt", "ctrl_c", "manual_stop")
CONTEXT_LIMIT_SUBSTRINGS = (
    "context_limit",
    "context_window",
    "context_exceeded",
    "context_full",
    "max_context",
    "token_limit",
    "max_tokens",
    "conversation_too_long",
    "input_too_long",
)


@dataclass(frozen=True)
class StopEvent:
    cwd: Path
    session_id: str = ""
    stop_reason: str = ""
    end_turn_reason: str = ""
    user_requested: bool = False


@dataclass(frozen=True)
class Located:
    scope: str
    record: ModeState


@dataclass(frozen=True)
class GateSnapshot:
    ralph: Located | None = None
    reinforced: tuple[Located, ...] = ()


@dataclass(frozen=True)
class Mutation:
    scope: str
    mode: str
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Decision:
    allow: bool
    branch: str
    reason: str | None = None
    mutation: Mutation | None = None


def is_user_abort(stop_reason: str) -> bool:
    reason = (stop_reason or "").strip().lower()
    if not reason:
        return False
    if reason in ABORT_EXACT:
        return True
    return any(marker in reason for marker in ABORT_SUBSTRINGS)


def is_context_limit_stop(stop_reason: str, end_turn_reason: str = "") -> bool:
    for value in (stop_reason, end_turn_reason):
        reason = (value or "").lower()
        if any(marker in reason for marker in CONTEXT_LIMIT_SUBSTRINGS):
            return True
    return False


def _eligible(record: ModeState | None, session_id: str, now: datetime, stale_after_minutes: int) -> bool:
    if record is None or not record.active:
        return False
    if not record.bound_to(session_id):
        return False
    if record.is_stale(now, stale_after_minutes):
        logger.debug("ignoring stale %s state started %s", record.mode, record.started_at)
        return False
    return True


def locate(scopes: Scopes, mode: str, session_id: str, now: datetime, stale_after_minutes: int = 0) -> Located | None:
    """First eligible record for ``mode``, project scope before global."""
    for store in scopes.stores():
        record = store.read(mode)
        if _eligible(record, session_id, now, stale_after_minutes):
            return Located(scope=store.scope, record=record)
    return None


def take_snapshot(scopes: Scopes, session_id: str, now: datetime, stale_after_minutes: int = 0) -> GateSnapshot:
    reinforced = []
    for mode in REINFORCED_MODES:
        found = locate(scopes, mode, session_id, now, stale_after_minutes)
        if found is not None:
            reinforced.append(found)
    return GateSnapshot(
        ralph=locate(scopes, RALPH, session_id, now, stale_after_minutes),
        reinforced=tuple(reinforced),
    )


def _stamp(now: datetime) -> str:
    return now.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def decide(event: StopEvent, snapshot: GateSnapshot, counts: Counts, now: datetime) -> Decision:
    if event.user_requested or is_user_abort(event.stop_reason):
        return Decision(allow=True, branch="user-stop")
    if is_context_limit_stop(event.stop_reason, event.end_turn_reason):
        return Decision(allow=True, branch="context-limit")

    if snapshot.ralph is not None and isinstance(snapshot.ralph.record, RalphState):
        ralph = snapshot.ralph.record
        if ralph.verification_pending:
            return Decision(
                allow=False,
                branch="ralph-verification",
                reason=messages.ralph_verification(ralph, ralph.verification),
            )
        if ralph.iteration < ralph.max_iterations:
            changes = {"iteration": ralph.iteration + 1, "last_checked_at": _stamp(now)}
            return Decision(
                allow=False,
                branch="ralph-continuation",
                reason=messages.ralph_continuation(replace(ralph, **changes)),
                mutation=Mutation(scope=snapshot.ralph.scope, mode=RALPH, changes=changes),
            )

    if counts.total > 0:
        for found in snapshot.reinforced:
            record = found.record
            changes = {"reinforcement_count": record.reinforcement_count + 1, "last_checked_at": _stamp(now)}
            return Decision(
                allow=False,
                branch="reinforcement",
                reason=messages.reinforcement(replace(record, **changes), counts.total),
                mutation=Mutation(scope=found.scope, mode=record.mode, changes=changes),
            )
        return Decision(allow=False, branch="incomplete-items", reason=messages.todo_continuation(counts))

    return Decision(allow=True, branch="idle")


def apply(decision: Decision, scopes: Scopes) -> bool:
    """Persist the decision's mutation against a fresh read of the record.

    A record deleted or deactivated since the snapshot is left alone, so a
    concurrent cancellation is never resurrected.
    """
    mutation = decision.mutation
    if mutation is None:
        return False
    store = scopes.by_scope(mutation.scope)
    current = store.read(mutation.mode)
    if current is None or not current.active:
        logger.debug("skipping %s update: state vanished or went inactive", mutation.mode)
        return False
    return store.write(mutation.mode, replace(current, **mutation.changes))


def run_stop(
    event: StopEvent,
    home: Path,
    stale_after_minutes: int = 0,
    now: datetime | None = None,
) -> Decision:
    moment = now or datetime.now(timezone.utc)
    if event.user_requested or is_user_abort(event.stop_reason) or is_context_limit_stop(
        event.stop_reason, event.end_turn_reason
    ):
        return decide(event, GateSnapshot(), Counts(), moment)
    scopes = Scopes.for_paths(event.cwd, home)
    snapshot = take_snapshot(scopes, event.session_id, moment, stale_after_minutes)
    counts = count_incomplete(event.session_id, event.cwd, home)
    decision = decide(event, snapshot, counts, moment)
    apply(decision, scopes)
    logger.debug("stop decision branch=%s allow=%s", decision.branch, decision.allow)
    return decision
