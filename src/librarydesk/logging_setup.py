"""Logging setup for the command-line entry points."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "librarydesk"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def resolve_level(level: Optional[str], default: str = "WARNING") -> str:
    """Return the level name in upper case, or ``default`` if it is not a known level."""
    name = (level or "").upper()
    return name if name in LOG_LEVELS else default


def configure_logging(level: str = "WARNING", console: Optional[Console] = None) -> logging.Logger:
    """Attach a Rich handler to the package logger.

    Safe to call more than once; the handler is only installed the first time.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    return logger
