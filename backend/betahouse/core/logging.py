"""Loguru setup shared by the API, services and third-party libraries.

Standard library ``logging`` records (uvicorn, SQLAlchemy, httpx) are
forwarded into Loguru through :class:`InterceptHandler`, so everything
ends up on one sink with one format.

Environment:
    LOG_LEVEL: Minimum level, ``INFO`` by default.
    LOG_JSON: When truthy, emit one JSON object per record instead of text.
"""

import logging
import os
import sys

from loguru import logger

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes")

ROUTED_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "asyncio",
    "httpx",
    "sqlalchemy.engine",
)

logger.remove()
logger.add(
    sys.stdout,
    level=LOG_LEVEL,
    format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | {name}:{line} | {message}",
    serialize=LOG_JSON,
    backtrace=True,
    diagnose=False,
)


class InterceptHandler(logging.Handler):
    """Forward a stdlib ``LogRecord`` to Loguru at the matching level."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # NOTE: Skip frames inside the logging module so the record keeps the caller's location
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def route_stdlib_loggers(names=ROUTED_LOGGERS, level: str = LOG_LEVEL) -> None:
    """Attach the intercept handler to `names` and stop propagation to root."""

    for name in names:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.setLevel(level)
        std_logger.propagate = False


logging.basicConfig(handlers=[InterceptHandler()], level=LOG_LEVEL, force=True)
route_stdlib_loggers()
