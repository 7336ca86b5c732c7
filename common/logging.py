"""
Structured logging for the rules engine, built on structlog.

Every call is event-style: logger.info("rule_execution_started", rule_id=...).
Request handlers bind the caller's correlation id once with
bind_request_context() and every event logged while handling that request
carries it.
"""

import logging
import sys
from typing import Optional

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog processors and the stdlib root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines (True) or colored console output (False)
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_request_context(correlation_id: str, **extra) -> None:
    """Replace the per-request context with correlation_id and extra fields."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id, **extra)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: Optional[str] = None):
    """Return a structlog logger, usually get_logger(__name__)."""
    return structlog.get_logger(name)
