"""Stderr logging for hook invocations.

Stdout carries exactly one protocol document, so every diagnostic goes to
stderr. Verbose output is opt-in through ``OMC_DEBUG``.
"""

from __future__ import annotations

import logging
import os
import sys

LOGGER_ROOT = "omc_hooks"
LOG_FORMAT = "[omc:%(name)s] %(levelname)s %(message)s"
DEBUG_ENV = "OMC_DEBUG"


def debug_enabled(environ: dict[str, str] | None = None) -> bool:
    value = (environ if environ is not None else os.environ).get(DEBUG_ENV, "").strip().lower()
    if not value:
        return False
    if value in ("0", "false", "no", "off"):
        return False
    return True


def configure(environ: dict[str, str] | None = None) -> logging.Logger:
    root = logging.getLogger(LOGGER_ROOT)
    # One plain stderr handler, rebound when sys.stderr has been replaced.
    current = None
    for handler in list(root.handlers):
        if type(handler) is not logging.StreamHandler:
            continue
        if handler.stream is sys.stderr and current is None:
            current = handler
        else:
            root.removeHandler(handler)
    if current is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug_enabled(environ) else logging.WARNING)
    root.propagate = False
    return root
