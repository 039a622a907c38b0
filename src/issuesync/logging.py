"""Logging setup for issuesync.

All output goes through the ``issuesync`` logger hierarchy and is rendered
with a rich handler.
"""

from __future__ import annotations

import logging
import re

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "issuesync"
DEFAULT_LOG_LEVEL = "INFO"

_NEWLINE_RE = re.compile(r"\r?\n")


def setup_logging(level: str = DEFAULT_LOG_LEVEL, console: Console | None = None) -> logging.Logger:
    """Configure the root issuesync logger and return it."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
        markup=False,
        log_time_format="[%X]",
    )
    handler.setLevel(log_level)
    logger.addHandler(handler)
    logger.propagate = False

    logger.debug("Logging initialized (level=%s)", level.upper())
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a component, prefixed with ``issuesync.``."""
    if not name.startswith(f"{LOGGER_NAME}."):
        name = f"{LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def truncate(text: str, length: int) -> str:
    """Escape newlines and shorten ``text`` for single-line log output."""
    if not text:
        return "empty"
    text = _NEWLINE_RE.sub("\\\\n", text)
    if len(text) <= length:
        return text
    return f"{text[:length]}..."
