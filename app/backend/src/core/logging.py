"""Structured logging configuration."""

from __future__ import annotations

import logging

import structlog

from .config import get_settings


def configure_logging(level: str | None = None) -> None:
    """Route structlog through stdlib logging and render JSON lines."""

    resolved_level = (level or get_settings().log_level or "INFO").upper()
    logging.basicConfig(level=resolved_level, format="%(message)s")

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
