"""Logging setup shared by the API, the placement service and the optimizer.

Every record goes to stdout as ``time | level | logger | message``; messages
themselves carry ``key=value`` fields separated by `` | ``.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from vmplacement.utils.config import get_settings


_LOGGER_INITIALIZED = False

# Per-iteration progress is emitted under this namespace at DEBUG.
OPTIMIZER_LOGGER_NAMESPACE = "vmplacement.services"

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: Optional[str] = None, optimizer_level: Optional[str] = None) -> None:
    """Install the stdout handler once per process.

    ``VMP_LOG_LEVEL`` drives the root logger and ``VMP_OPTIMIZER_LOG_LEVEL``
    the optimizer namespace, so iteration traces can be switched on without
    turning on DEBUG for uvicorn and FastAPI.
    """

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    settings = get_settings()
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=_LOG_FORMAT,
        stream=sys.stdout,
    )
    logging.getLogger(OPTIMIZER_LOGGER_NAMESPACE).setLevel(
        (optimizer_level or settings.optimizer_log_level).upper()
    )
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Module logger; the first call configures placement logging."""
    configure_logging()
    return logging.getLogger(name)
