"""Structured logging configuration using structlog.

Every event is tagged with the image it concerns, the service operation
(create, read_tile, update, ...) and, for level-scoped work, the pyramid
level. The level is emitted as ``pyramid_level`` so it stays distinct from
the log level. Output is JSON for production or coloured console for dev.
"""

import logging
import sys
from collections.abc import MutableMapping
from contextvars import ContextVar
from typing import Any, cast

import structlog
from structlog.types import Processor

from tiler.config import settings

# Correlation fields, scoped to the current task by contextvars
_image_id: ContextVar[str | None] = ContextVar("image_id", default=None)
_operation: ContextVar[str | None] = ContextVar("operation", default=None)
_level: ContextVar[int | None] = ContextVar("pyramid_level", default=None)


def set_correlation_context(
    image_id: str | None = None,
    operation: str | None = None,
    level: int | None = None,
) -> None:
    """Set correlation fields for the current async context.

    Fields left as None keep their current value, so a service can set the
    operation first and add the image id once it has been assigned.

    Args:
        image_id: Identifier of the image being processed
        operation: Service operation name (e.g., "create", "update")
        level: Pyramid level being derived or read, logged as pyramid_level
    """
    if image_id is not None:
        _image_id.set(image_id)
    if operation is not None:
        _operation.set(operation)
    if level is not None:
        _level.set(level)


def clear_correlation_context() -> None:
    """Clear all correlation context variables."""
    _image_id.set(None)
    _operation.set(None)
    _level.set(None)


def _add_correlation_ids(
    logger: logging.Logger,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor that adds image_id, operation and pyramid_level."""
    _ = logger, method_name  # Required by structlog processor signature
    image_id = _image_id.get()
    operation = _operation.get()
    level = _level.get()

    if image_id is not None:
        event_dict["image_id"] = image_id
    if operation is not None:
        event_dict["operation"] = operation
    if level is not None:
        event_dict["pyramid_level"] = level

    return event_dict


def configure_logging(
    level: str | None = None,
    log_format: str | None = None,
) -> None:
    """Configure structlog with the specified settings.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to settings.LOG_LEVEL.
        log_format: Output format ("console" or "json").
                    Defaults to settings.LOG_FORMAT.
    """
    level = level or settings.LOG_LEVEL
    log_format = log_format or settings.LOG_FORMAT

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _add_correlation_ids,
    ]

    if log_format == "json":
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure stdlib logging to match
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance.

    Args:
        name: Logger name. If None, uses the calling module's name.

    Returns:
        A bound structlog logger instance.
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
