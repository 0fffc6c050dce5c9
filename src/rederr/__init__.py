"""rederr - run a command and color its stderr.

Environment variables:
    REDERR_COLOR: always | auto | never (default always)
    REDERR_SIGINT_MODE: ignore | forward (default ignore)
    REDERR_LOG_DEBUG: debug log to a temp file (default false)

Usage:
    rederr make test
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
