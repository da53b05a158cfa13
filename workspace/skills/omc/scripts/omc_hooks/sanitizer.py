"""Prompt sanitization ahead of keyword matching.

Structural noise (markup blocks, URLs, file paths, code) routinely contains
words like ``team`` or ``pipeline`` that the user never meant as a mode
request. The sanitized copy is used for matching only; outbound messages
always quote the original prompt.

Known limitation: tag blocks are matched non-recursively, so
``<a><a>x</a> ralph</a>`` strips only up to the first ``</a>`` and leaves
`` ralph</a>`` visible to the matcher.
"""

from __future__ import annotations

import re

TAG_BLOCK_PATTERN = re.compile(r"<(\w[\w-]*)[\s>][\s\S]*?</\1>")
SELF_CLOSING_TAG_PATTERN = re.compile(r"<\w[\w-]*(?:\s[^>]*)?\s*/>")
URL_PATTERN = re.compile(r"https?://[^\s)>\]]+")
PATH_PATTERN = re.compile(r"(^|[\s\"'`(])/?(?:[\w.-]+/)+[\w.-]+", re.MULTILINE)
FENCED_CODE_PATTERN = re.compile(r"```[\s\S]*?```")
INLINE_CODE_PATTERN = re.compile(r"`[^`]+`")


def strip_noise(text: str) -> str:
    cleaned = TAG_BLOCK_PATTERN.sub("", text)
    cleaned = SELF_CLOSING_TAG_PATTERN.sub("", cleaned)
    cleaned = URL_PATTERN.sub("", cleaned)
    # Keep the boundary character so adjacent words do not fuse.
    cleaned = PATH_PATTERN.sub(r"\1", cleaned)
    cleaned = FENCED_CODE_PATTERN.sub("", cleaned)
    return INLINE_CODE_PATTERN.sub("", cleaned)


def sanitize(text: str) -> str:
    return strip_noise(text).lower()
