"""Logging setup shared by the API and the Celery worker."""

from __future__ import annotations

import logging
import sys
from typing import Optional

LOGGER_NAMESPACE = "faxlink"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stderr handler on the faxlink logger namespace."""
    root = logging.getLogger(LOGGER_NAMESPACE)
    root.setLevel(level.upper())

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root.handlers.clear()
    root.addHandler(handler)

    # Silence noisy third-party loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger under the faxlink namespace (e.g. faxlink.correlation)."""
    if not name:
        return logging.getLogger(LOGGER_NAMESPACE)
    if name.startswith(LOGGER_NAMESPACE):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")
