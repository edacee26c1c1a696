"""Logging configuration for the expense tracker API."""

from __future__ import annotations

import logging
import sys

ROOT_LOGGER_NAME = "tracker_api"


def setup_logging(level: int | str = logging.INFO) -> logging.Logger:
    """Configure and return the application logger."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)

    if logger.handlers:
        logger.setLevel(level)
        return logger

    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)

    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get a logger under the application namespace."""
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
