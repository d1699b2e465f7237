"""
Structured logging infrastructure using structlog.

This module provides centralized logging configuration with:
- JSON formatting for log aggregation
- Text (console) formatting for interactive use
- Log level management using the CLI vocabulary (debug|info|warn|error)
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

LOG_FORMATS = ("text", "json")


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log entries."""
    event_dict["app"] = "appcontroller"
    return event_dict


def parse_log_level(log_level: str) -> int:
    """
    Map a CLI log level name to a stdlib logging level.

    Args:
        log_level: One of debug, info, warn, error (case-insensitive)

    Returns:
        Logging level constant

    Raises:
        ValueError: If the level is unknown
    """
    level = LOG_LEVELS.get(log_level.lower())
    if level is None:
        raise ValueError(f"Unknown log level: {log_level}")
    return level


def configure_logging(
    log_level: str = "info",
    log_format: str = "text",
) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (debug, info, warn, error)
        log_format: Output format (text or json)
    """
    if log_format not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {log_format}")

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=parse_log_level(log_level),
        force=True,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
