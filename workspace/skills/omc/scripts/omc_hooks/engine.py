#!/usr/bin/env python3
"""omc hook engine: one subcommand per hook event plus state maintenance."""

from __future__ import annotations

import argparse
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TextIO

from . import activation, collaborators, gate, hookio, logs, restore, verification
from .config import HookConfig, load_config
from .keywords import CANCEL, TEAM_FEATURE, detect, resolve
from .messages import synthesize
from .records import CANCELLABLE_MODES
from .store import Scopes

logger = logging.getLogger(__name__)

HOOK_COMMANDS = ("keyword-detect", "persistent-mode", "session-start")


class OmcError(RuntimeError):
    """Domain-specific error for user-facing command failures."""


@dataclass(frozen=True)
class HookContext:
    data: dict[str, Any]
    cwd: Path
    home: Path
    session_id: str
    config: HookConfig


def resolve_home(args: argparse.Namespace) -> Path:
    return Path(args.home).expanduser() if args.home else Path.home()


def hook_context(
    args: argparse.Namespace,
    environ: dict[str, str] | None = None,
    stdin: TextIO | None = None,
) -> HookContext:
    """Read the hook document and load config for the directory it names.

    The stdin deadline itself comes from a preliminary config resolved
    against the process directory, since the event's directory is only
    known after the read.
    """
    env = dict(os.environ if environ is None else environ)
    home = resolve_home(args)
    preliminary = load_config(Path.cwd(), home, env)
    data = hookio.parse_input(hookio.read_stdin(preliminary.stdin_timeout_seconds, stdin))
    cwd = Path(args.cwd) if args.cwd else hookio.event_cwd(data, Path.cwd())
    session_id = args.session_id or hookio.event_session_id(data)
    return HookContext(
        data=data,
        cwd=cwd,
        home=home,
        session_id=session_id,
        config=load_config(cwd, home, env),
    )


def cmd_keyword_detect(ctx: HookContext) -> dict[str, Any]:
    prompt = hookio.extract_prompt(ctx.data)
    if not prompt:
        return hookio.allow()
    features = (TEAM_FEATURE,) if ctx.config.team_enabled else ()
    resolved = resolve(detect(prompt, features))
    if not resolved:
        return hookio.allow()
    scopes = Scopes.for_paths(ctx.cwd, ctx.home)
    if resolved[0].name == CANCEL:
        activation.cancel(scopes)
    else:
        activation.activate(scopes, resolved, prompt, ctx.session_id, ctx.config)
    return hookio.with_context(synthesize(resolved, prompt, ctx.config.skill_namespace))


def cmd_persistent_mode(ctx: HookContext) -> dict[str, Any]:
    event = hookio.stop_event(ctx.data, ctx.cwd, ctx.session_id)
    decision = gate.run_stop(event, ctx.home, stale_after_minutes=ctx.config.stale_after_minutes)
    if decision.allow:
        return hookio.allow()
    return hookio.block(decision.reason or "")


def cmd_session_start(ctx: HookContext) -> dict[str, Any]:
    payload = dict(ctx.data)
    payload.setdefault("session_id", ctx.session_id)
    texts = collaborators.session_start_texts(ctx.config, payload, ctx.cwd)
    text = restore.build_session_context(
        ctx.cwd,
        ctx.home,
        ctx.session_id,
        collaborator_texts=texts,
        stale_after_minutes=ctx.config.stale_after_minutes,
    )
    return hookio.with_context(text)


def command_scopes(args: argparse.Namespace) -> tuple[Scopes, HookConfig]:
    cwd = Path(args.cwd) if args.cwd else Path.cwd()
    home = resolve_home(args)
    return Scopes.for_paths(cwd, home), load_config(cwd, home)


def cmd_verify_start(args: argparse.Namespace) -> dict[str, Any]:
    scopes, config = command_scopes(args)
    try:
        ralph = verification.start(scopes, args.claim, max_attempts=config.max_verification_attempts)
    except verification.VerificationError as error:
        raise OmcError(str(error)) from error
    return {"status": "ok", "verification": ralph.verification.to_dict() if ralph.verification else None}


def cmd_verify_record(args: argparse.Namespace) -> dict[str, Any]:
    """Record a verdict given directly or read from the oracle's output.

    Oracle output without the approval marker counts as a rejection and
    becomes the feedback unless ``--feedback`` is also given.
    """
    scopes, _ = command_scopes(args)
    approved = args.approved
    feedback = args.feedback
    if args.oracle_output is not None:
        approved = verification.detect_approval(args.oracle_output)
        if not approved and not feedback:
            feedback = args.oracle_output.strip() or None
    try:
        ralph = verification.record(scopes, approved=approved, feedback=feedback)
    except verification.VerificationError as error:
        raise OmcError(str(error)) from error
    state = ralph.verification.to_dict() if ralph.verification else None
    return {"status": "ok", "approved": approved, "verification": state}


def cmd_state_show(args: argparse.Namespace) -> dict[str, Any]:
    scopes, _ = command_scopes(args)
    modes = (args.mode,) if args.mode else CANCELLABLE_MODES
    states: dict[str, dict[str, Any]] = {}
    for store in scopes.stores():
        found = {}
        for mode in modes:
            record = store.read(mode)
            if record is not None:
                found[mode] = record.to_dict()
        states[store.scope] = found
    return {"status": "ok", "states": states}


def cmd_state_clear(args: argparse.Namespace) -> dict[str, Any]:
    scopes, _ = command_scopes(args)
    modes = (args.mode,) if args.mode else CANCELLABLE_MODES
    return {"status": "ok", "removed": scopes.clear(modes)}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="omc mode-orchestration hooks")
    parser.add_argument("--cwd", help="Project directory (defaults to the hook input, then the process directory)")
    parser.add_argument("--home", help="Home directory holding .omc and .claude (defaults to the user home)")
    parser.add_argument("--session-id", help="Session id (overrides the hook input)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    keyword_detect = subparsers.add_parser("keyword-detect", help="Prompt-submit hook: classify and activate modes")
    keyword_detect.set_defaults(func=cmd_keyword_detect, hook=True)

    persistent_mode = subparsers.add_parser("persistent-mode", help="Stop hook: decide whether the agent may stop")
    persistent_mode.set_defaults(func=cmd_persistent_mode, hook=True)

    session_start = subparsers.add_parser("session-start", help="Session-start hook: restore active modes")
    session_start.set_defaults(func=cmd_session_start, hook=True)

    verify_start = subparsers.add_parser("verify-start", help="Request oracle verification of a ralph completion claim")
    verify_start.add_argument("--claim", required=True)
    verify_start.set_defaults(func=cmd_verify_start, hook=False)

    verify_record = subparsers.add_parser("verify-record", help="Record an oracle verdict")
    verdict = verify_record.add_mutually_exclusive_group(required=True)
    verdict.add_argument("--approved", action="store_true", dest="approved")
    verdict.add_argument("--rejected", action="store_false", dest="approved")
    verdict.add_argument("--oracle-output", help="Oracle response text; approved when it carries the approval marker")
    verify_record.add_argument("--feedback")
    verify_record.set_defaults(func=cmd_verify_record, hook=False)

    state_show = subparsers.add_parser("state-show", help="Print stored mode state for both scopes")
    state_show.add_argument("--mode", choices=CANCELLABLE_MODES)
    state_show.set_defaults(func=cmd_state_show, hook=False)

    state_clear = subparsers.add_parser("state-clear", help="Delete stored mode state in both scopes")
    state_clear.add_argument("--mode", choices=CANCELLABLE_MODES)
    state_clear.set_defaults(func=cmd_state_clear, hook=False)

    return parser


def run_hook(args: argparse.Namespace, stdin: TextIO | None = None) -> dict[str, Any]:
    """Hooks never fail the host: any error resolves to the allow output."""
    try:
        return args.func(hook_context(args, stdin=stdin))
    except Exception:
        logger.exception("%s hook failed; allowing", args.command)
        return hookio.allow()


def main(argv: list[str] | None = None) -> int:
    logs.configure()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.hook:
        hookio.emit(run_hook(args))
        return 0

    try:
        result = args.func(args)
    except OmcError as error:
        hookio.emit({"status": "error", "error": str(error)})
        return 1

    hookio.emit(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
