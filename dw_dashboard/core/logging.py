"""
Logging for the dashboard API.

Every module logs under the ``dw_dashboard`` namespace.  A single stdout
handler sits on that package logger; module loggers carry no handler of
their own and reach it through propagation.
"""
from __future__ import annotations

import logging
import sys

from dw_dashboard.core.config import get_settings

ROOT_LOGGER = "dw_dashboard"

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _level() -> int:
    return getattr(logging, get_settings().log_level.upper(), logging.INFO)


def configure_logging() -> logging.Logger:
    """Attach the stdout handler to the package logger once and apply the level."""
    root = logging.getLogger(ROOT_LOGGER)
    if not any(getattr(h, "_dw_dashboard", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
        handler._dw_dashboard = True
        root.addHandler(handler)
    root.setLevel(_level())
    return root


def get_logger(name: str) -> logging.Logger:
    root = configure_logging()
    if name == ROOT_LOGGER:
        return root
    if not name.startswith(ROOT_LOGGER + "."):
        # scripts and __main__ still log through the package handler
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
