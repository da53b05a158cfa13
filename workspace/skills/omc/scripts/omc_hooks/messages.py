"""Advisory text for every hook decision.

Prompt-submit payloads tell the agent which skills to load or which
provider to delegate to; stop and session-start payloads re-assert active
modes. All text comes from ``templates/`` through ``lazy_loader``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .counter import Counts
from .keywords import CANCEL, DELEGATION_MODES, REASONING_MODE, ModeMatch
from .lazy_loader import render
from .records import ModeState, RalphState, VerificationState

DEFAULT_NAMESPACE = "oh-my-claudecode"
BLOCK_SEPARATOR = "\n\n---\n"
PART_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class Provider:
    label: str
    tool: str
    roles: tuple[str, ...]
    default_role: str


PROVIDERS = {
    "codex": Provider(
        label="Codex",
        tool="ask_codex",
        roles=("architect", "planner", "critic", "analyst", "code-reviewer", "security-reviewer", "tdd-guide"),
        default_role="architect",
    ),
    "gemini": Provider(
        label="Gemini",
        tool="ask_gemini",
        roles=("designer", "writer", "vision"),
        default_role="designer",
    ),
}


def _arguments(args: str) -> str:
    return f"\nArguments: {args}" if args else ""


def qualified_skill(name: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}:{name}"


def skill_invocation(name: str, prompt: str, args: str = "", namespace: str = DEFAULT_NAMESPACE) -> str:
    return render(
        "skill-invocation",
        title=name.upper(),
        skill=qualified_skill(name, namespace),
        arguments=_arguments(args),
        prompt=prompt,
    )


def multi_skill_invocation(
    matches: Sequence[ModeMatch], prompt: str, namespace: str = DEFAULT_NAMESPACE
) -> str:
    if not matches:
        return ""
    if len(matches) == 1:
        return skill_invocation(matches[0].name, prompt, matches[0].args, namespace)
    blocks = [
        render(
            "skill-block",
            position=position,
            title=match.name.upper(),
            skill=qualified_skill(match.name, namespace),
            arguments=_arguments(match.args),
        )
        for position, match in enumerate(matches, start=1)
    ]
    return render(
        "multi-skill-invocation",
        titles=", ".join(match.name.upper() for match in matches),
        blocks="\n\n".join(blocks),
        prompt=prompt,
    )


def delegation(provider: str, prompt: str) -> str:
    config = PROVIDERS.get(provider)
    if config is None:
        return ""
    return render(
        "delegation",
        title=provider.upper(),
        provider=provider,
        provider_label=config.label,
        tool=config.tool,
        roles=", ".join(config.roles),
        default_role=config.default_role,
        prompt=prompt,
    )


def delegations(matches: Sequence[ModeMatch], prompt: str) -> str:
    return PART_SEPARATOR.join(delegation(match.name, prompt) for match in matches)


def combined(
    skills: Sequence[ModeMatch],
    delegated: Sequence[ModeMatch],
    prompt: str,
    namespace: str = DEFAULT_NAMESPACE,
) -> str:
    sections: list[str] = []
    if skills:
        sections.append("## Section 1: Skill Invocations\n\n" + multi_skill_invocation(skills, prompt, namespace))
    if delegated:
        number = 2 if skills else 1
        sections.append(f"## Section {number}: MCP Delegations\n\n" + delegations(delegated, prompt))
    return render(
        "combined",
        titles=", ".join(match.name.upper() for match in (*skills, *delegated)),
        sections=PART_SEPARATOR.join(sections),
    )


def ultrathink_message() -> str:
    return render("ultrathink") + BLOCK_SEPARATOR


def _synthesize_without_reasoning(
    matches: Sequence[ModeMatch], prompt: str, namespace: str
) -> str:
    skills = [match for match in matches if match.name not in DELEGATION_MODES]
    delegated = [match for match in matches if match.name in DELEGATION_MODES]
    if skills and delegated:
        return combined(skills, delegated, prompt, namespace)
    if delegated:
        return delegations(delegated, prompt)
    return multi_skill_invocation(skills, prompt, namespace)


def synthesize(
    matches: Sequence[ModeMatch], prompt: str, namespace: str = DEFAULT_NAMESPACE
) -> str | None:
    """Build the prompt-submit payload for already resolved matches.

    Returns ``None`` when nothing matched. The reasoning mode never becomes
    a skill invocation: its banner is prepended to whatever the remaining
    matches produce, or emitted alone.
    """
    if not matches:
        return None
    if any(match.name == CANCEL for match in matches):
        cancel = next(match for match in matches if match.name == CANCEL)
        return skill_invocation(CANCEL, prompt, cancel.args, namespace)
    reasoning = any(match.name == REASONING_MODE for match in matches)
    remainder = [match for match in matches if match.name != REASONING_MODE]
    body = _synthesize_without_reasoning(remainder, prompt, namespace) if remainder else ""
    if reasoning:
        return ultrathink_message() + body
    return body or None


# Stop-time messages.


def ralph_verification(record: RalphState, verification: VerificationState) -> str:
    feedback = ""
    if verification.oracle_feedback:
        feedback = f"**Previous Oracle Feedback (rejected):**\n{verification.oracle_feedback}\n"
    return (
        render(
            "ralph-verification",
            attempt=verification.verification_attempts + 1,
            max_attempts=verification.max_verification_attempts,
            task=verification.original_task or record.original_prompt or "No task specified",
            claim=verification.completion_claim or "Task marked complete",
            feedback=feedback,
        )
        + BLOCK_SEPARATOR
    )


def ralph_continuation(record: RalphState) -> str:
    original = f"Original task: {record.original_prompt}" if record.original_prompt else ""
    return (
        render(
            "ralph-continuation",
            iteration=record.iteration,
            max_iterations=record.max_iterations,
            promise=record.promise,
            original_task=original,
        )
        + BLOCK_SEPARATOR
    )


def reinforcement(record: ModeState, total: int) -> str:
    original = f"Original task: {record.original_prompt}" if record.original_prompt else ""
    return (
        render(
            "ultrawork-persistence",
            title=record.mode.upper(),
            mode=record.mode,
            count=record.reinforcement_count,
            total=total,
            original_task=original,
        )
        + BLOCK_SEPARATOR
    )


def todo_continuation(counts: Counts) -> str:
    return render("todo-continuation", label=counts.label, total=counts.total) + BLOCK_SEPARATOR


# Session-start messages.


def restore_block(record: ModeState) -> str:
    task = record.original_prompt or "Task in progress"
    if isinstance(record, RalphState):
        text = render(
            "restore-ralph",
            task=task,
            iteration=record.iteration or 1,
            max_iterations=record.max_iterations,
        )
    else:
        template = "restore-ultrawork" if record.mode == "ultrawork" else "restore-mode"
        text = render(
            template,
            title=record.mode.upper(),
            mode=record.mode,
            started_at=record.started_at or "an earlier session",
            task=task,
        )
    return text + BLOCK_SEPARATOR


def pending_items(count: int) -> str:
    return render("pending-items", count=count) + BLOCK_SEPARATOR
