"""Structured logging configuration for papersort.

Uses structlog for JSON-formatted or console logs to stdout. Supports a
correlation ID (run_id) via contextvars for tracing one classification run
through the pipeline, matcher and registry.

Usage:
    from papersort.core.logging import get_logger, set_correlation_id

    logger = get_logger(__name__)

    # In the pipeline:
    set_correlation_id(str(uuid.uuid4()))

    # Log with automatic correlation ID inclusion:
    logger.info("document_classified", index=3, bucket_code="CIT 417")
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from papersort.config_schema import LoggingConfig

# Third-party loggers that flood DEBUG output (Pillow logs every PNG chunk)
NOISY_LOGGERS = ("PIL",)

# Context variable for correlation ID (run_id)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context.

    Call this at the start of each pipeline run with a new UUID.
    All subsequent log entries in this context will include the ID.

    Args:
        correlation_id: UUID string for this run, or None to clear
    """
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Get the current correlation ID, if set."""
    return _correlation_id.get()


def add_correlation_id(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor to add correlation ID to log entries."""
    correlation_id = _correlation_id.get()
    if correlation_id is not None:
        event_dict["run_id"] = correlation_id
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_output: If True, output JSON; if False, output human-readable format
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_correlation_id,
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging_from_config(config: LoggingConfig) -> None:
    """Apply the `logging` section of config.yaml."""
    configure_logging(log_level=config.level, json_output=config.json_output)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        A structlog BoundLogger instance configured for this application
    """
    return structlog.get_logger(name)
