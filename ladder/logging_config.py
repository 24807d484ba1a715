"""Logging setup for the ladder service and the admin CLI.

``LOG_LEVEL`` (DEBUG, INFO, WARNING, ERROR, CRITICAL) picks the level when
none is passed. DEBUG or ``mode="test"`` switches to the verbose format with
source locations.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Literal, Optional

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

VERBOSE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
CONCISE_FORMAT = "%(asctime)s %(levelname).1s %(name)s: %(message)s"

# outbound email and access logs are only interesting when debugging
_CHATTY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def resolve_level(level: Optional[str] = None) -> int:
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: Optional[LogLevel] = None, mode: Optional[Literal["test", "prod"]] = None) -> None:
    """Install a single stdout handler on the root logger.

    Safe to call more than once; earlier handlers are replaced.
    """
    numeric_level = resolve_level(level)
    verbose = mode == "test" or numeric_level <= logging.DEBUG

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(
        logging.Formatter(fmt=VERBOSE_FORMAT if verbose else CONCISE_FORMAT, datefmt="%H:%M:%S")
    )
    root.setLevel(numeric_level)
    root.addHandler(handler)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)
