"""Logging setup for the sloppy_scan logger tree."""

import logging
import sys
from typing import Optional

from ..config import Settings, get_settings

_HANDLER_NAME = "sloppy-scan-stderr"


def setup_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """Configure the package logger once: level, stderr handler, no propagation.

    Safe to call repeatedly; the handler is replaced rather than duplicated.
    """
    settings = settings or get_settings()

    app_logger = logging.getLogger("sloppy_scan")
    app_logger.setLevel(settings.logging.level)
    app_logger.propagate = False

    for handler in list(app_logger.handlers):
        if handler.get_name() == _HANDLER_NAME:
            app_logger.removeHandler(handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.set_name(_HANDLER_NAME)
    stderr_handler.setLevel(settings.logging.level)
    stderr_handler.setFormatter(logging.Formatter(settings.logging.format))
    app_logger.addHandler(stderr_handler)

    return app_logger
