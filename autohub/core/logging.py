"""Logging setup shared by the API process."""

from __future__ import annotations

import logging
import sys


def setup_logging(level: int = logging.INFO, name: str = "autohub") -> logging.Logger:
    """Attach a single stdout handler to the package logger (idempotent)."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(handler)
    return logger
