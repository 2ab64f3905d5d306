"""
logging_config.py — Centralized Logging Configuration for SubScout

Sets up Loguru as the single logging backend. Intercepts Python's stdlib
logging module so the services' getLogger("subscout.*") calls route
through Loguru with structured output.

Business Rules:
- All logs go through Loguru (no direct print() or stdlib handlers)
- JSON format in production for machine parsing
- Human-readable format in development
- Production is detected from APP_URL (anything not on localhost)

Called by: app/main.py (on startup)
Depends on: environment (LOG_LEVEL, APP_URL)
"""

import logging
import os
import sys

from loguru import logger


def _is_production() -> bool:
    app_url = os.getenv("APP_URL", "")
    return bool(app_url) and "localhost" not in app_url and "127.0.0.1" not in app_url


def setup_logging() -> None:
    """Configure Loguru and intercept stdlib logging.

    Call once at app startup, before any other imports that log.
    """
    logger.remove()

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    is_production = _is_production()

    if is_production:
        # Production: JSON lines to stdout (the platform collects these)
        logger.add(
            sys.stdout,
            level=log_level,
            format="{message}",
            serialize=True,
        )
    else:
        logger.add(
            sys.stdout,
            level=log_level,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message}"
            ),
            colorize=True,
        )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    # Quiet noisy third-party loggers
    for noisy in ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info("Logging configured", level=log_level, production=is_production)


class _InterceptHandler(logging.Handler):
    """Route stdlib logging records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller (skip frames from stdlib logging internals)
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )
