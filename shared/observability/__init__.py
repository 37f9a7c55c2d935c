"""
Observability Stack - Prometheus metrics + structured logging + log queue

Usage:
    from shared.observability import configure_logging, LogQueue, LogQueueHandler

    queue = LogQueue(capacity=100, log_dir="data/logs")
    configure_logging("sheet-fetcher", extra_handlers=[LogQueueHandler(queue)])
"""
from .metrics import (
    record_transfer,
    record_cycle,
    set_connection_status,
    time_operation,
    TimerContext,
)
from .logging_config import (
    configure_logging,
    bind_context,
    LogContext,
)
from .log_queue import (
    LogQueue,
    LogQueueHandler,
    LogSink,
    HttpLogSink,
)

__all__ = [
    # Metrics
    "record_transfer",
    "record_cycle",
    "set_connection_status",
    "time_operation",
    "TimerContext",
    # Logging
    "configure_logging",
    "bind_context",
    "LogContext",
    # Log queue
    "LogQueue",
    "LogQueueHandler",
    "LogSink",
    "HttpLogSink",
]
