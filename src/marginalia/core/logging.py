"""
Marginalia Logging - Structured logging for the suggestion pipeline.

Every component (scheduler, collector, queue, controllers) logs through
``get_logger(__name__)`` so that the output format is decided once, at
startup, by :func:`configure_logging`.

Manifesto:
    The pipeline is mostly invisible to the reader: suggestions appear or
    they don't. Structured logs are the only way to see *why* a suggestion
    was deduplicated, why a tick was skipped, or why a handler failed.

    - **Standardizes:** Same key/value event format everywhere
    - **Structures:** JSON output when not attached to a terminal
    - **Correlates:** subject_id / controller context via contextvars

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="marginalia")
            │
            ▼
        structlog processor chain:
          1. TimeStamper (iso)
          2. add_log_level, logger name
          3. service metadata
          4. JSONRenderer (or ConsoleRenderer on a tty), written to stderr

Examples:
    >>> from marginalia.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", service="marginalia")
    >>> logger = get_logger(__name__)
    >>> logger.info("suggestion_enqueued", suggestion_id="s-1", queue_length=3)

Tags:
    logging, structlog, observability, marginalia-core

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Store service name for metadata
_SERVICE_NAME = "marginalia"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


class _NamedPrintLogger(structlog.PrintLogger):
    """PrintLogger that remembers the name it was requested under."""

    def __init__(self, file: Any, name: str | None = None) -> None:
        super().__init__(file)
        self.name = name


def _add_logger_name(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add the ``get_logger(name)`` name as the ``logger`` field."""
    name = getattr(logger, "name", None)
    if name:
        event_dict.setdefault("logger", name)
    return event_dict


class _StderrLoggerFactory:
    """PrintLogger bound to whatever ``sys.stderr`` is when the logger is built.

    Log output never mixes with command output on stdout.
    """

    def __call__(self, *args: Any) -> structlog.PrintLogger:
        return _NamedPrintLogger(sys.stderr, args[0] if args else None)


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "marginalia",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=_StderrLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger.

    Args:
        name: Logger name (usually __name__), rendered as the ``logger`` field

    Returns:
        Lazy structlog BoundLogger proxy
    """
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(controller="ai_agent", action="ANALYZE_BEHAVIOR"):
            logger.info("action_started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context.keys())

    async def __aenter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    async def __aexit__(self, *args) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
