"""
Structured Logging - structlog rendering over the standard library.

Modules keep logging through logging.getLogger(__name__); configure_logging
routes those records through structlog processors so every entry carries
a timestamp, level and service name, rendered as JSON or console output.
Extra handlers (the log queue bridge) attach alongside the console handler.
"""
import logging
import sys
from typing import Iterable, Optional

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    json_output: bool = True,
    console: bool = True,
    extra_handlers: Optional[Iterable[logging.Handler]] = None,
) -> None:
    """
    Configure structured logging for the service.

    Args:
        service_name: Name of the service for log identification
        log_level: Logging level (DEBUG, INFO, WARN/WARNING, ERROR)
        json_output: Whether to output JSON (True) or human-readable (False)
        console: Attach a stdout handler
        extra_handlers: Additional handlers, e.g. a LogQueueHandler
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_service_info(service_name),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    if console:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        ))
        root_logger.addHandler(handler)

    for extra in extra_handlers or ():
        root_logger.addHandler(extra)

    root_logger.setLevel(_level_for(log_level))

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _level_for(log_level: str) -> int:
    name = log_level.upper()
    if name == "WARN":
        name = "WARNING"
    return getattr(logging, name, logging.INFO)


def _add_service_info(service_name: str):
    """Processor to add service information to all log entries."""
    def processor(logger, method_name, event_dict):
        event_dict["service"] = service_name
        return event_dict
    return processor


def bind_context(**kwargs) -> None:
    """
    Bind key-value pairs to the logging context.

    Usage:
        bind_context(cycle_id=3)
        logger.info("Downloading")  # includes cycle_id
    """
    bind_contextvars(**kwargs)


class LogContext:
    """
    Context manager for scoped logging context.

    Usage:
        with LogContext(cycle_id=3, trigger="manual"):
            logger.info("Starting")
    """

    def __init__(self, **kwargs):
        self.context = kwargs

    def __enter__(self):
        bind_context(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        unbind_contextvars(*self.context.keys())
        return False
