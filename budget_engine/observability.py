"""
Logging setup.

Modules log through the standard library (`logging.getLogger(__name__)`);
init_logging() routes those records into a loguru sink.
"""

import logging
import sys

from loguru import logger


class InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru, keeping the caller's frame."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def init_logging(level: str = "INFO", serialize: bool = False) -> None:
    """
    Install the loguru console sink and intercept stdlib logging.

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR)
        serialize: Emit JSON lines instead of human-readable text
    """
    logger.remove()
    logger.add(
        sys.stdout,
        level=level.upper(),
        serialize=serialize,
        backtrace=True,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # Reduce noise from third-party libraries
    for name in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialised (level={}, serialize={})", level, serialize)
