#!/usr/bin/env python3
"""Script entry point for the omc hooks (``omc.py <hook-event>``)."""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from omc_hooks.engine import main  # noqa: E402

if __name__ == "__main__":
    raise SystemExit(main())
