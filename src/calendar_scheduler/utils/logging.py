"""Logging configuration for the calendar scheduler."""

import logging
import sys
from pathlib import Path
from typing import Optional

from .exceptions import ConfigurationError

ROOT_LOGGER = "calendar_scheduler"

# Log every pointer move and layout pass at DEBUG
GESTURE_LOGGERS = (
    "calendar_scheduler.interaction",
    "calendar_scheduler.layout",
)

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"


def parse_level(name: str) -> int:
    """Numeric level for a level name such as ``"debug"``."""
    level = logging.getLevelName(name.strip().upper())
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown log level: {name!r}")
    return level


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    trace_gestures: bool = False,
) -> logging.Logger:
    """
    Configure application logging.

    Gesture and layout modules stay at INFO unless ``trace_gestures`` is set,
    so a DEBUG session is not flooded by pointer moves.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        trace_gestures: Also emit DEBUG records from gesture and layout code

    Returns:
        Configured logger instance

    Raises:
        ConfigurationError: If ``level`` is not a known level name
    """
    numeric = parse_level(level)
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(numeric)
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(numeric)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    gesture_level = logging.DEBUG if trace_gestures else max(numeric, logging.INFO)
    for name in GESTURE_LOGGERS:
        logging.getLogger(name).setLevel(gesture_level)

    # requests' connection pool logs every request at DEBUG
    logging.getLogger("urllib3").setLevel(max(numeric, logging.WARNING))

    return logger
