"""Logging configuration using loguru.

Everything the document store emits goes through loguru.  Stdlib logging
(uvicorn, httpx, ...) is bridged in so a single format covers the process.
An optional rotating file sink keeps an audit trail next to the console.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "multipart")


class _StdlibBridge(logging.Handler):
    """Forward stdlib ``LogRecord``s to loguru, preserving the call-site."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Install loguru sinks and route stdlib logging through them.

    Safe to call more than once (the CLI and the app lifespan both call it);
    previously installed sinks are replaced.
    """
    level = level.upper()

    logger.remove()
    logger.add(sys.stderr, level=level, format=_FORMAT)
    if log_file:
        logger.add(log_file, level=level, format=_FORMAT, rotation="20 MB", retention=5, enqueue=True)

    logging.basicConfig(handlers=[_StdlibBridge()], level=0, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialised (level={}, file={})", level, log_file or "-")
