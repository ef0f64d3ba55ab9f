"""
logging_config.py — Centralized Logging Configuration for QuoteMaster

Sets up Loguru as the single logging backend. Intercepts Python's stdlib
logging module so the getLogger() calls in services route through Loguru
with the request id bound by the HTTP middleware.

Business Rules:
- All logs go through Loguru (no direct print() or stdlib handlers)
- JSON format in production for machine parsing
- Human-readable format in development
- Request ID from middleware is included when available ("-" otherwise)
- Log rotation: 50MB files, 7-day retention

Called by: quotemaster/main.py (on startup)
Depends on: environment (LOG_LEVEL, APP_URL, LOG_DIR)
"""

import logging
import os
import sys

from loguru import logger

_LOCAL_PREFIXES = ("http://localhost", "http://127.0.0.1")


def setup_logging() -> None:
    """Configure Loguru and intercept stdlib logging.

    Call once at app startup, before any other imports that log.
    """
    logger.remove()
    logger.configure(extra={"request_id": "-"})

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    is_production = not os.getenv("APP_URL", "http://localhost:8000").startswith(_LOCAL_PREFIXES)

    if is_production:
        # Production: JSON lines to stdout (container runtime captures these)
        logger.add(
            sys.stdout,
            level=log_level,
            format="{message}",
            serialize=True,
        )
        log_dir = os.getenv("LOG_DIR", "/var/log/quotemaster")
        logger.add(
            os.path.join(log_dir, "quotemaster.log"),
            level=log_level,
            rotation="50 MB",
            retention="7 days",
            compression="gz",
            serialize=True,
        )
    else:
        logger.add(
            sys.stdout,
            level=log_level,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<magenta>{extra[request_id]}</magenta> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message}"
            ),
            colorize=True,
        )

    # Intercept stdlib logging → route through Loguru
    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for noisy in ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info("Logging configured", level=log_level, production=is_production)


class _InterceptHandler(logging.Handler):
    """Route stdlib logging records to Loguru.

    Any code using logging.getLogger("x").info("msg") has that message
    captured by Loguru with the caller's frame and bound context.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames from stdlib logging internals
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )
