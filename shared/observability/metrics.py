"""
Custom Metrics - transfer, fetch cycle and stage latency tracking.

Provides pre-configured Prometheus metrics for the sheet fetcher:
- Transfer operation counters and duration histograms
- Downloaded byte counter
- Fetch cycle outcomes
- Per-stage timing with slow-operation warnings
"""
import logging
import time
from typing import Dict, Optional

from prometheus_client import Counter, Histogram, Enum as EnumMetric

from core.state import ConnectionStatus, TransferMetric

logger = logging.getLogger(__name__)

# Stages slower than this are logged at WARNING
SLOW_OPERATION_SECONDS = 5.0

TRANSFER_OPERATIONS = Counter(
    "fetcher_transfer_operations_total",
    "Transfer attempts by operation and outcome",
    ["operation", "outcome"],
)

TRANSFER_DURATION = Histogram(
    "fetcher_transfer_duration_seconds",
    "Connect-and-transfer duration per attempt",
    ["operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

DOWNLOADED_BYTES = Counter(
    "fetcher_downloaded_bytes_total",
    "Bytes of validated downloads",
)

FETCH_CYCLES = Counter(
    "fetcher_cycles_total",
    "Completed fetch cycles by outcome",
    ["outcome"],
)

STAGE_DURATION = Histogram(
    "fetcher_stage_duration_seconds",
    "Duration of each fetch cycle stage",
    ["stage"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

CONNECTION_STATE = EnumMetric(
    "fetcher_connection_status",
    "Current transfer client connection status",
    states=[s.value for s in ConnectionStatus],
)


def record_transfer(metric: TransferMetric) -> None:
    """Mirror a TransferMetric into the Prometheus collectors."""
    if metric.synthetic:
        outcome = "synthetic"
    elif metric.succeeded:
        outcome = "success"
    else:
        outcome = "failure"
    TRANSFER_OPERATIONS.labels(operation=metric.operation, outcome=outcome).inc()
    TRANSFER_DURATION.labels(operation=metric.operation).observe(metric.duration_ms / 1000)
    if metric.succeeded and metric.operation == "download" and metric.byte_size > 0:
        DOWNLOADED_BYTES.inc(metric.byte_size)


def record_cycle(outcome: str) -> None:
    FETCH_CYCLES.labels(outcome=outcome).inc()


def set_connection_status(status: ConnectionStatus) -> None:
    CONNECTION_STATE.state(status.value)


class TimerContext:
    """Context manager for timing a named stage."""

    def __init__(self, stage: str, metadata: Optional[Dict] = None,
                 slow_threshold: float = SLOW_OPERATION_SECONDS):
        self.stage = stage
        self.metadata = metadata or {}
        self.slow_threshold = slow_threshold
        self.start_time = None
        self.duration_ms: float = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        logger.debug(f"Timing started: {self.stage}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.perf_counter() - self.start_time
        self.duration_ms = elapsed * 1000
        STAGE_DURATION.labels(stage=self.stage).observe(elapsed)
        status = "failed" if exc_type else "ok"
        logger.info(
            f"Stage {self.stage} {status} in {self.duration_ms:.1f}ms",
            extra={"payload": {"stage": self.stage, "duration_ms": round(self.duration_ms, 1),
                               "success": exc_type is None, **self.metadata}},
        )
        if elapsed > self.slow_threshold:
            logger.warning(f"Slow operation detected: {self.stage} took {self.duration_ms:.0f}ms")
        return False


def time_operation(stage: str, **metadata) -> TimerContext:
    """
    Create a context manager for timing a stage.

    Usage:
        with time_operation("parse", path=path) as timer:
            grid = parse_file(path)
        timer.duration_ms
    """
    return TimerContext(stage, metadata)
