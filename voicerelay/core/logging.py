"""
core/logging.py
---------------
structlog setup for the relay API.

DEBUG=true  → coloured console lines, every library at DEBUG
DEBUG=false → one JSON object per line; chatty dependencies held at WARNING

Events are short sentences with keyword context (message_id, user_id, key,
outcome). Passwords, tokens and audio bytes are never passed to a logger.
"""

import logging
import sys

import structlog

from voicerelay.core.config import settings

# Per-request or per-statement chatter from the HTTP server, the DB drivers
# and the S3 client
_NOISY_LOGGERS = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "aiosqlite",
    "asyncpg",
    "botocore",
    "aiobotocore",
    "aioboto3",
    "multipart",
)


def configure_logging() -> None:
    level = logging.DEBUG if settings.DEBUG else logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    if not settings.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.DEBUG
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__):
    return structlog.get_logger(name)
