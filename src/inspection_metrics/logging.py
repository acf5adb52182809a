"""Logging setup for the query client and the ``inspection-query`` command.

The level comes from ``INSPECTION_LOG_LEVEL`` (see :mod:`.settings`).
"""

import logging
from typing import Any

from .settings import get_settings


def configure_logging(extra_handlers: list[logging.Handler] | None = None) -> None:
    """Install the pipe-separated line format on the root logger.

    ``basicConfig`` is a no-op once the root logger has handlers, so repeated
    calls from module-level ``get_logger`` lookups are harmless.
    """

    settings = get_settings()
    fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    logging.basicConfig(level=settings.log_level, format=fmt)
    if extra_handlers:
        root = logging.getLogger()
        for handler in extra_handlers:
            root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def log_structured(
    logger: logging.Logger, message: str, level: int = logging.INFO, **context: Any
) -> None:
    """Log ``message`` followed by ``key=value`` pairs, e.g. ``query complete results=3``."""

    extras = " ".join(f"{key}={value}" for key, value in context.items())
    logger.log(level, "%s %s", message, extras)
