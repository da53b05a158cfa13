"""Oracle verification lifecycle for ralph loops."""

from __future__ import annotations

import logging
import re
from dataclasses import replace

from .records import RALPH, DEFAULT_MAX_VERIFICATION_ATTEMPTS, RalphState, VerificationState, now_iso
from .store import Scopes, StateStore

logger = logging.getLogger(__name__)

APPROVAL_PATTERN = re.compile(r"<oracle-approved>[\s\S]*?VERIFIED_COMPLETE[\s\S]*?</oracle-approved>", re.IGNORECASE)


class VerificationError(RuntimeError):
    """Raised when a verification command has no ralph loop to act on."""


def detect_approval(text: str) -> bool:
    return bool(text) and APPROVAL_PATTERN.search(text) is not None


def _active_ralph(scopes: Scopes) -> tuple[StateStore, RalphState]:
    found = scopes.find_active(RALPH)
    if found is None or not isinstance(found[1], RalphState):
        raise VerificationError("No active ralph loop to verify")
    return found


def start(
    scopes: Scopes,
    claim: str,
    max_attempts: int = DEFAULT_MAX_VERIFICATION_ATTEMPTS,
) -> RalphState:
    store, ralph = _active_ralph(scopes)
    verification = VerificationState(
        pending=True,
        verification_attempts=0,
        max_verification_attempts=max_attempts,
        original_task=ralph.original_prompt,
        completion_claim=claim,
        requested_at=now_iso(),
    )
    updated = replace(ralph, verification=verification)
    if not store.write(RALPH, updated):
        raise VerificationError(f"Could not persist verification request to {store.path_for(RALPH)}")
    logger.debug("verification requested in %s scope", store.scope)
    return updated


def record(scopes: Scopes, approved: bool, feedback: str | None = None) -> RalphState:
    """Count one oracle verdict.

    Approval or an exhausted attempt budget clears the pending flag; a
    rejection with attempts left keeps it and stores the feedback for the
    next verification prompt.
    """
    store, ralph = _active_ralph(scopes)
    current = ralph.verification
    if current is None or not current.pending:
        raise VerificationError("No pending verification for the active ralph loop")
    attempts = current.verification_attempts + 1
    exhausted = attempts >= current.max_verification_attempts
    if approved or exhausted:
        verification = replace(current, pending=False, verification_attempts=attempts)
        if exhausted and not approved:
            logger.warning("verification attempts exhausted (%d); accepting completion claim", attempts)
    else:
        verification = replace(
            current,
            verification_attempts=attempts,
            oracle_feedback=feedback or current.oracle_feedback,
        )
    updated = replace(ralph, verification=verification)
    if not store.write(RALPH, updated):
        raise VerificationError(f"Could not persist verification verdict to {store.path_for(RALPH)}")
    return updated
