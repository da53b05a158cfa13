"""omc hook surface.

Each hook event is a subcommand of one engine; classification, counting,
and the stop-time gate live once in this package and are shared by all of
them.
"""

from .engine import main

__all__ = ["main"]
