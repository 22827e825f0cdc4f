"""
Logging -- One stderr handler on the `branchless` logger

Modules log through `logging.getLogger(__name__)`; the CLI calls
configure_logging() once with the configured level.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "branchless: %(levelname)s: %(message)s"
DEBUG_FORMAT = "branchless: %(levelname)s [%(name)s]: %(message)s"


def configure_logging(level: Optional[str] = None, stream=None) -> logging.Logger:
    """
    Install (or replace) the package handler and set its level.

    Args:
        level: Level name ("DEBUG", "INFO", ...). None keeps WARNING.
        stream: Output stream (default: sys.stderr)
    """
    numeric = logging.getLevelName((level or "WARNING").upper())
    if not isinstance(numeric, int):
        numeric = logging.WARNING

    logger = logging.getLogger("branchless")
    for handler in list(logger.handlers):
        if getattr(handler, "_branchless", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(DEBUG_FORMAT if numeric <= logging.DEBUG else LOG_FORMAT))
    handler._branchless = True
    logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger
