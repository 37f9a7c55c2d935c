"""
Async Log Queue - bounded event buffer with periodic remote forwarding.

Events at or above the configured severity are appended to a local
JSON-lines file (one per UTC day, app-YYYY-MM-DD.log) and to an in-memory
deque capped at `capacity`. A background task drains the deque to the
sink every `flush_interval` seconds; an ERROR event schedules an
immediate flush instead of waiting for the timer.
"""
import asyncio
import json
import logging
import sys
from collections import deque
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Protocol, Sequence, Union

import httpx

from core.state import LogEvent, LogSeverity

logger = logging.getLogger(__name__)


class LogSink(Protocol):
    """Remote destination for flushed events. send() raises on failure."""

    async def send(self, events: Sequence[LogEvent]) -> None:
        ...


class HttpLogSink:
    """POSTs batches as {"logs": [...]} to a collector endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.headers = headers or {}
        self._transport = transport

    async def send(self, events: Sequence[LogEvent]) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                self.url,
                json={"logs": [event.to_dict() for event in events]},
                headers=self.headers,
            )
            response.raise_for_status()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LogQueue:
    """
    Bounded log buffer.

    Args:
        capacity: Maximum queued events; overflow drops the oldest
        min_severity: Events below this level are ignored entirely
        log_dir: Directory for daily JSON-lines files (None disables persistence)
        sink: Remote sink; without one flush() is a no-op
        flush_interval: Seconds between periodic flushes
    """

    def __init__(
        self,
        capacity: int = 100,
        min_severity: Union[str, LogSeverity] = LogSeverity.DEBUG,
        log_dir: Optional[Union[str, Path]] = None,
        sink: Optional[LogSink] = None,
        flush_interval: float = 30.0,
    ):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.min_severity = LogSeverity.parse(min_severity)
        self.log_dir = Path(log_dir) if log_dir else None
        self.sink = sink
        self.flush_interval = flush_interval

        self._queue: Deque[LogEvent] = deque(maxlen=capacity)
        self._flush_lock = asyncio.Lock()
        self._flush_task: Optional[asyncio.Task] = None
        self._urgent_flush: Optional[asyncio.Task] = None
        self._flush_again = False

        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)

    def __len__(self) -> int:
        return len(self._queue)

    def pending(self) -> List[LogEvent]:
        """Snapshot of queued events, oldest first."""
        return list(self._queue)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def log(
        self,
        severity: Union[str, LogSeverity],
        message: str,
        payload: Optional[Dict[str, Any]] = None,
        source: Optional[str] = None,
    ) -> Optional[LogEvent]:
        event = LogEvent(
            timestamp=_utc_now().isoformat(),
            severity=LogSeverity.parse(severity),
            message=message,
            payload=payload,
            source=source,
        )
        return event if self.record(event) else None

    def record(self, event: LogEvent) -> bool:
        """
        Accept an event. Returns False if it is below the severity threshold.

        The file append happens synchronously, before the event is queued.
        """
        if not event.severity.at_least(self.min_severity):
            return False

        self._persist(event)
        self._queue.append(event)

        if event.severity == LogSeverity.ERROR:
            self._schedule_flush()
        return True

    def _log_file_for(self, day: datetime) -> Path:
        return self.log_dir / f"app-{day.strftime('%Y-%m-%d')}.log"

    def _persist(self, event: LogEvent) -> None:
        if self.log_dir is None:
            return
        try:
            with open(self._log_file_for(_utc_now()), "a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_dict(), default=str) + "\n")
        except OSError as e:
            # Routing this through logging would re-enter the queue
            print(f"LogQueue: failed to write log file: {e}", file=sys.stderr)

    def _schedule_flush(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._urgent_flush is not None and not self._urgent_flush.done():
            self._flush_again = True
            return
        self._urgent_flush = loop.create_task(self._flush_urgently())

    async def _flush_urgently(self) -> None:
        # Errors recorded while a send is in flight get their own pass
        while True:
            self._flush_again = False
            await self.flush()
            if not self._flush_again:
                return

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    async def flush(self) -> int:
        """
        Forward queued events to the sink.

        Returns:
            Number of events delivered (0 when there is no sink or it failed)
        """
        if self.sink is None:
            return 0

        async with self._flush_lock:
            if not self._queue:
                return 0
            batch = list(self._queue)
            self._queue.clear()

            try:
                await self.sink.send(batch)
            except Exception as e:
                retained = batch[-(self.capacity // 2):] if self.capacity >= 2 else []
                newer = list(self._queue)
                self._queue.clear()
                self._queue.extend(retained + newer)
                logger.warning(
                    f"Failed to send {len(batch)} log events, requeued {len(retained)}: {e}"
                )
                return 0

            return len(batch)

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval)
            await self.flush()

    def start(self) -> None:
        """Start the periodic flush task on the running loop."""
        if self._flush_task is not None and not self._flush_task.done():
            return
        self._flush_task = asyncio.get_running_loop().create_task(self._flush_loop())
        logger.debug(f"Log flush timer started ({self.flush_interval}s)")

    async def stop(self) -> None:
        for task in (self._flush_task, self._urgent_flush):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._flush_task = None
        self._urgent_flush = None

    async def close(self) -> None:
        """Stop the timer and make a final flush attempt."""
        await self.stop()
        await self.flush()

    # ------------------------------------------------------------------
    # Persisted entries
    # ------------------------------------------------------------------

    def read_logs(self, days: int = 7) -> List[LogEvent]:
        """Persisted events from the last `days` days, newest first."""
        if self.log_dir is None:
            return []

        today = _utc_now()
        events: List[LogEvent] = []
        for offset in range(days):
            path = self._log_file_for(today - timedelta(days=offset))
            if not path.exists():
                continue
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        events.append(LogEvent.from_dict(json.loads(line)))
                    except (ValueError, KeyError):
                        continue
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events

    def clear_logs(self) -> int:
        """Drop queued events and delete persisted log files. Returns files removed."""
        self._queue.clear()
        if self.log_dir is None:
            return 0
        removed = 0
        for path in self.log_dir.glob("app-*.log"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"Could not delete log file {path}: {e}")
        return removed


_LEVEL_TO_SEVERITY = (
    (logging.ERROR, LogSeverity.ERROR),
    (logging.WARNING, LogSeverity.WARN),
    (logging.INFO, LogSeverity.INFO),
)


def severity_for_level(levelno: int) -> LogSeverity:
    for threshold, severity in _LEVEL_TO_SEVERITY:
        if levelno >= threshold:
            return severity
    return LogSeverity.DEBUG


class LogQueueHandler(logging.Handler):
    """
    Bridges standard logging into a LogQueue.

    A `payload` dict passed via extra= becomes the event's structured payload.
    """

    def __init__(self, queue: LogQueue, level: int = logging.NOTSET):
        super().__init__(level)
        self.queue = queue

    def emit(self, record: logging.LogRecord) -> None:
        try:
            payload = getattr(record, "payload", None)
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                severity=severity_for_level(record.levelno),
                message=record.getMessage(),
                payload=payload if isinstance(payload, dict) else None,
                source=record.name,
            )
            self.queue.record(event)
        except Exception:
            self.handleError(record)
