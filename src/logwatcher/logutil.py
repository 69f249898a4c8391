"""Project-wide logging utilities.

Provides a single logger configured lazily; applications embedding logwatcher
can override handlers or levels as needed. We default to WARNING to stay quiet
unless something noteworthy happens (e.g., a best-effort flush failed or a
watcher loop died on a fatal error). Transitions are logged at DEBUG and
rotations/reloads at INFO.
"""
from __future__ import annotations

import logging
from typing import Optional

_LOGGER: Optional[logging.Logger] = None


def get_logger() -> logging.Logger:
    global _LOGGER
    if _LOGGER is None:
        logger = logging.getLogger("logwatcher")
        # Only add a handler if the application hasn't configured logging.
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("[%(name)s] %(levelname)s: %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(logging.WARNING)
        _LOGGER = logger
    return _LOGGER

__all__ = ["get_logger"]
