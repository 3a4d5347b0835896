"""
Logging setup for the stepwatch CLI.

Everything in stepwatch logs through loguru.  APScheduler logs through the
standard library, so its records are forwarded into loguru as well and end
up in the same sinks.
"""

import logging
import sys

from loguru import logger

CONSOLE_FORMAT = "<level>[{level.name}]</level> {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{line} | {message}"

# Standard-library loggers forwarded into loguru
FORWARDED_LOGGERS = ("apscheduler",)


class _ForwardToLoguru(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """
    Point loguru at stderr (and optionally a rotating file) at *level*.

    Args:
        level: Minimum level name, case-insensitive.
        log_file: Also write to this file when given.
        rotation: Size at which the log file rotates.
        retention: How long rotated files are kept.
    """
    level = level.upper()
    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)
    if log_file:
        logger.add(log_file, level=level, format=FILE_FORMAT, rotation=rotation, retention=retention)

    handler = _ForwardToLoguru()
    for name in FORWARDED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [handler]
        std_logger.setLevel(level if level in logging.getLevelNamesMapping() else logging.DEBUG)
        std_logger.propagate = False
