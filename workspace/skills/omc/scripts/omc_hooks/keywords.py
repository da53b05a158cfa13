"""Keyword rules and deterministic conflict resolution.

Both the rule set and the resolution policy are plain tables so they can be
audited and tested without running a hook.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from .sanitizer import sanitize

CANCEL = "cancel"
REASONING_MODE = "ultrathink"
DELEGATION_MODES = ("codex", "gemini")
TEAM_FEATURE = "team"

PRIORITY_ORDER = (
    "cancel",
    "ralph",
    "autopilot",
    "team",
    "ultrawork",
    "ecomode",
    "pipeline",
    "ralplan",
    "plan",
    "tdd",
    "research",
    "ultrathink",
    "deepsearch",
    "analyze",
    "codex",
    "gemini",
)
PRIORITY_INDEX = {name: index for index, name in enumerate(PRIORITY_ORDER)}

# (winner, loser): when both are detected the loser is dropped.
OVERRIDES = (
    ("ecomode", "ultrawork"),
    ("team", "autopilot"),
)

POSSESSIVE_PREFIX = re.compile(r"\b(?:my|the|our|a|his|her|their|its)\s\Z")


@dataclass(frozen=True)
class ModeMatch:
    name: str
    args: str = ""


@dataclass(frozen=True)
class KeywordPattern:
    regex: re.Pattern[str]
    not_after: re.Pattern[str] | None = None

    def search(self, text: str) -> re.Match[str] | None:
        for match in self.regex.finditer(text):
            if self.not_after is not None and self.not_after.search(text, 0, match.start()):
                continue
            return match
        return None


@dataclass(frozen=True)
class KeywordRule:
    name: str
    patterns: tuple[KeywordPattern, ...]
    feature: str | None = None

    def match(self, text: str) -> ModeMatch | None:
        for pattern in self.patterns:
            found = pattern.search(text)
            if found is None:
                continue
            args = found.groupdict().get("arg") or ""
            return ModeMatch(name=self.name, args=args)
        return None


def _p(expression: str, not_after: re.Pattern[str] | None = None) -> KeywordPattern:
    return KeywordPattern(regex=re.compile(expression, re.IGNORECASE), not_after=not_after)


RULES = (
    KeywordRule("cancel", (_p(r"\b(?:cancelomc|stopomc)\b"),)),
    KeywordRule("ralph", (_p(r"\b(?:ralph|don't stop|must complete|until done)\b"),)),
    KeywordRule(
        "autopilot",
        (
            _p(r"\b(?:autopilot|auto pilot|auto-pilot|autonomous|full auto|fullsend)\b"),
            _p(r"\bbuild\s+me\s+"),
            _p(r"\bcreate\s+me\s+"),
            _p(r"\bmake\s+me\s+"),
            _p(r"\bi\s+want\s+an?\s+"),
            _p(r"\bhandle\s+it\s+all\b"),
            _p(r"\bend\s+to\s+end\b"),
            _p(r"\be2e\s+this\b"),
        ),
    ),
    KeywordRule(
        "team",
        (
            _p(r"\bteam\b", not_after=POSSESSIVE_PREFIX),
            _p(r"\bcoordinated\s+team\b"),
            # Legacy parallel-build phrases now route to team.
            _p(r"\b(?:ultrapilot|ultra-pilot)\b"),
            _p(r"\bparallel\s+build\b"),
            _p(r"\bswarm\s+build\b"),
            _p(r"\bswarm\s+(?P<arg>\d+)\s+agents?\b"),
            _p(r"\bcoordinated\s+agents\b"),
        ),
        feature=TEAM_FEATURE,
    ),
    KeywordRule("ultrawork", (_p(r"\b(?:ultrawork|ulw|uw)\b"),)),
    KeywordRule("ecomode", (_p(r"\b(?:eco|ecomode|eco-mode|efficient|save-tokens|budget)\b"),)),
    KeywordRule("pipeline", (_p(r"\bpipeline\b"), _p(r"\bchain\s+agents\b"))),
    KeywordRule("ralplan", (_p(r"\bralplan\b"),)),
    KeywordRule("plan", (_p(r"\b(?:plan this|plan the)\b"),)),
    KeywordRule("tdd", (_p(r"\btdd\b"), _p(r"\btest\s+first\b"), _p(r"\bred\s+green\b"))),
    KeywordRule("research", (_p(r"\bresearch\b"), _p(r"\banalyze\s+data\b"), _p(r"\bstatistics\b"))),
    KeywordRule("ultrathink", (_p(r"\b(?:ultrathink|think hard|think deeply)\b"),)),
    KeywordRule(
        "deepsearch",
        (
            _p(r"\bdeepsearch\b"),
            _p(r"\bsearch\s+(?:the\s+)?(?:codebase|code|files?|project)\b"),
            _p(r"\bfind\s+(?:in\s+)?(?:codebase|code|all\s+files?)\b"),
        ),
    ),
    KeywordRule(
        "analyze",
        (
            _p(r"\bdeep\s*analyze\b"),
            _p(r"\binvestigate\s+(?:the|this|why)\b"),
            _p(r"\bdebug\s+(?:the|this|why)\b"),
        ),
    ),
    KeywordRule("codex", (_p(r"\b(?:ask|use|delegate\s+to)\s+(?:codex|gpt)\b"),)),
    KeywordRule("gemini", (_p(r"\b(?:ask|use|delegate\s+to)\s+gemini\b"),)),
)


def match_keywords(
    clean_text: str,
    features: Iterable[str] = (),
    rules: Iterable[KeywordRule] = RULES,
) -> list[ModeMatch]:
    """Evaluate every rule against already-sanitized text.

    Matches are deduplicated by mode name; the first captured argument for
    a name wins.
    """
    enabled = frozenset(features)
    seen: dict[str, ModeMatch] = {}
    for rule in rules:
        if rule.feature is not None and rule.feature not in enabled:
            continue
        found = rule.match(clean_text)
        if found is None:
            continue
        existing = seen.get(found.name)
        if existing is None:
            seen[found.name] = found
        elif not existing.args and found.args:
            seen[found.name] = found
    return list(seen.values())


def detect(prompt: str, features: Iterable[str] = ()) -> list[ModeMatch]:
    return match_keywords(sanitize(prompt), features)


def resolve_names(names: Iterable[str]) -> tuple[str, ...]:
    present = set(names)
    if CANCEL in present:
        return (CANCEL,)
    for winner, loser in OVERRIDES:
        if winner in present and loser in present:
            present.discard(loser)
    return tuple(sorted(present, key=lambda name: (PRIORITY_INDEX.get(name, len(PRIORITY_ORDER)), name)))


def resolve(matches: Iterable[ModeMatch]) -> list[ModeMatch]:
    by_name: dict[str, ModeMatch] = {}
    for match in matches:
        by_name.setdefault(match.name, match)
    return [by_name[name] for name in resolve_names(by_name)]
