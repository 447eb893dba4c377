"""Console logging configuration for chronosync."""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"
CONSOLE_HANDLER_NAME = "chronosync-console"

# Only the level is colorized; INFO stays neutral
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "icalendar")

_TRUTHY = ("1", "true", "yes", "on")


def _resolve_level(level_name: Optional[str], debug: bool) -> int:
    env_debug = os.getenv("CHRONOSYNC_DEBUG", "").strip().lower() in _TRUTHY
    env_level = os.getenv("CHRONOSYNC_LOG_LEVEL", "").strip().upper()

    if debug or env_debug:
        return logging.DEBUG
    if env_level:
        level_name = env_level
    if level_name:
        level = logging.getLevelName(level_name.upper())
        if isinstance(level, int):
            return level
    return logging.INFO


def setup_logging(level_name: Optional[str] = None, debug: bool = False) -> int:
    """Configure the root logger with a colorized console handler.

    ``CHRONOSYNC_DEBUG`` (truthy) forces DEBUG and ``CHRONOSYNC_LOG_LEVEL``
    overrides ``level_name``. The console handler is added once, so repeated
    calls just adjust the level.

    Returns:
        The effective root level
    """
    level = _resolve_level(level_name, debug)

    root = logging.getLogger()
    if not any(h.get_name() == CONSOLE_HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.set_name(CONSOLE_HANDLER_NAME)
        handler.setFormatter(
            ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS)
        )
        root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )
    return level
