"""Logger namespace shared by the intake and render packages."""

from __future__ import annotations

import logging
import sys
from typing import Optional

LOGGER_NAME = "reelgate"
_LOG_FORMAT = "[reelgate] %(levelname)s %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    text = str(name or "").strip()
    if not text or text == LOGGER_NAME:
        return logging.getLogger(LOGGER_NAME)
    if text.startswith(LOGGER_NAME + "."):
        return logging.getLogger(text)
    return logging.getLogger(f"{LOGGER_NAME}.{text}")


def configure_logging(verbose: bool = False, stream=None) -> logging.Logger:
    """Attach a single prefixed stream handler to the package logger."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(logger.handlers):
        if getattr(handler, "_reelgate_handler", False):
            logger.removeHandler(handler)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    handler._reelgate_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
