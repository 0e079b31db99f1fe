"""Loguru setup for the relay process.

stdlib records (uvicorn, sse-starlette, the run coordinator) are bridged into
loguru, so one sink sees every line.  ``RELAY_LOG_JSON=1`` switches that sink
to one JSON object per line for log shippers.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

_TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Per-request and keep-alive chatter
_QUIET_LOGGERS = ("uvicorn.access", "sse_starlette.sse")


class _InterceptHandler(logging.Handler):
    """Forward a stdlib record to loguru, keeping its level and call site."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so {name}:{line} point at the caller
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", *, json: bool = False) -> None:
    """Make loguru the only log sink of the process.

    Safe to call more than once; each call replaces the previous sink.
    """
    level = level.upper()

    logger.remove()
    if json:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=_TEXT_FORMAT)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging configured (level={}, json={})", level, json)
