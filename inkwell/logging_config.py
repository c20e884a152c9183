"""
Logging setup for Inkwell.

Log records go to the console through rich, at the level named by the
LOG_LEVEL environment variable.
"""

from __future__ import annotations

import logging
import os

from rich.logging import RichHandler


def setup_logging(level: str | None = None) -> None:
    """Install a single RichHandler on the root logger."""
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.root.setLevel(level)

    handler = RichHandler(show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))
    logging.root.addHandler(handler)

    # The HTTP stack is chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.captureWarnings(True)
