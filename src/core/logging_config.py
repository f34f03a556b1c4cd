"""Structured logging configuration.

This module initializes structlog with a stable JSON event format.
Events go to stderr so CLI command output on stdout stays parseable.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from core.constants import DEFAULT_LOG_LEVEL

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Configure process-wide structlog processors and level filter.

    Args:
        level: Minimum level name (debug, info, warning, error).
    """
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            _LEVELS.get(level.lower(), logging.INFO)
        ),
        logger_factory=_stderr_logger_factory,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger with structured output.
    """
    return structlog.get_logger(name)


def _stderr_logger_factory(*_args: object) -> structlog.PrintLogger:
    """Build a print logger bound to the current stderr stream."""
    return structlog.PrintLogger(sys.stderr)


configure_logging()
