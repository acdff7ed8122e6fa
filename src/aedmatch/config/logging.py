"""Logging setup for the aedmatch CLI."""

from __future__ import annotations

import logging
import os

from .errors import InvalidConfigurationValueError

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"
# transport chatter that drowns out matching decisions at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "hishel", "sqlalchemy.engine")


def _level_from_env() -> int:
    raw = os.getenv("AEDMATCH_LOG_LEVEL")
    if raw is None or not raw.strip():
        return logging.INFO
    level = logging.getLevelNamesMapping().get(raw.strip().upper())
    if level is None:
        raise InvalidConfigurationValueError(
            "AEDMATCH_LOG_LEVEL", raw, expected="a logging level name"
        )
    return level


def configure_logging(*, verbose: bool = False, force: bool = False) -> int:
    """Initialise the root logger and return the level applied.

    ``verbose`` forces DEBUG and lets library loggers through; otherwise the level
    comes from ``AEDMATCH_LOG_LEVEL`` (default INFO) and the HTTP and SQL
    libraries are held at WARNING.
    """

    level = logging.DEBUG if verbose else _level_from_env()
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT, force=force)
    library_level = logging.NOTSET if verbose else max(level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
    return level
