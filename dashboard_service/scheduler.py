"""
Refresh Scheduler - runs fetch cycles on a timer or on demand.

One cycle at a time: a trigger that arrives while a cycle is in flight is
skipped, never queued or overlapped. Within a cycle the order is fixed:
connectivity test, download, validate, parse, build series, cleanup.
"""
import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from core.state import (
    CycleResult,
    FailedDownload,
    RowGrid,
    SeriesModel,
    SyntheticDownload,
)
from shared.clients.transfer_client import TransferClient
from shared.files.validator import FileValidator
from shared.observability.logging_config import LogContext
from shared.observability.metrics import record_cycle, time_operation
from .parser import parse_file
from .presenters import FailureNotifier, SeriesRenderer
from .series import build_series

logger = logging.getLogger(__name__)

ParseFn = Callable[[Union[str, Path]], RowGrid]
BuildFn = Callable[[RowGrid], SeriesModel]


class RefreshScheduler:
    """
    Owns the fetch cycle and the latest successfully built SeriesModel.

    A failed cycle leaves `latest` untouched so the previous series stays
    on screen; the failure goes to the notifier instead.
    """

    def __init__(
        self,
        client: TransferClient,
        validator: FileValidator,
        renderer: SeriesRenderer,
        notifier: FailureNotifier,
        *,
        interval: float = 30.0,
        parse: ParseFn = parse_file,
        build: BuildFn = build_series,
    ):
        self.client = client
        self.validator = validator
        self.renderer = renderer
        self.notifier = notifier
        self.interval = interval
        self._parse = parse
        self._build = build

        self.latest: Optional[SeriesModel] = None
        self.last_result: Optional[CycleResult] = None
        self.last_error: Optional[str] = None
        self.last_updated: Optional[datetime] = None

        self._in_progress = False
        self._cycle_count = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def trigger(self, reason: str = "manual") -> Optional[CycleResult]:
        """
        Run one fetch cycle now.

        Returns:
            The CycleResult, or None if skipped (cycle in flight) or failed
        """
        if self._in_progress:
            logger.info(f"Refresh ({reason}) skipped: a fetch cycle is already running")
            return None

        self._in_progress = True
        self._cycle_count += 1
        try:
            with LogContext(cycle=self._cycle_count, trigger=reason):
                return await self._run_cycle()
        finally:
            self._in_progress = False

    async def _run_cycle(self) -> Optional[CycleResult]:
        durations: Dict[str, float] = {}
        artifact: Optional[str] = None
        logger.info(f"Fetch cycle {self._cycle_count} started")

        try:
            with time_operation("connection_test") as timer:
                reachable = await self.client.test_connection()
            durations["connection_test"] = timer.duration_ms

            with time_operation("download") as timer:
                if reachable:
                    outcome = await self.client.download_file()
                else:
                    outcome = await self.client.synthetic_download("connectivity test failed")
            durations["download"] = timer.duration_ms

            if isinstance(outcome, FailedDownload):
                raise outcome.error
            artifact = outcome.path

            with time_operation("validate", path=artifact) as timer:
                self.validator.validate(artifact)
            durations["validate"] = timer.duration_ms

            with time_operation("parse", path=artifact) as timer:
                grid = self._parse(artifact)
            durations["parse"] = timer.duration_ms

            with time_operation("build_series", rows=len(grid)) as timer:
                series = self._build(grid)
            durations["build_series"] = timer.duration_ms

        except Exception as e:
            self.last_error = str(e)
            record_cycle("failure")
            self.notifier.record_failure(e)
            logger.debug(f"Fetch cycle {self._cycle_count} failed", exc_info=True)
            return None
        finally:
            if artifact is not None:
                self._cleanup(artifact)

        synthetic = isinstance(outcome, SyntheticDownload)
        self.renderer.render(series)
        self.latest = series
        self.last_error = None
        self.last_updated = datetime.now(timezone.utc)
        self.notifier.record_success()
        record_cycle("synthetic" if synthetic else "success")

        result = CycleResult(
            series=series,
            synthetic=synthetic,
            source_path=artifact,
            row_count=len(grid),
            completed_at=self.last_updated,
            stage_durations_ms=durations,
            synthetic_reason=outcome.reason if synthetic else None,
        )
        self.last_result = result
        logger.info(
            f"Fetch cycle {self._cycle_count} completed"
            f"{' with SYNTHETIC data' if synthetic else ''}: "
            f"{len(series.labels)} labels, {len(series.datasets)} dataset(s)"
        )
        return result

    @staticmethod
    def _cleanup(path: str) -> None:
        try:
            Path(path).unlink(missing_ok=True)
            logger.debug(f"Removed temporary file {path}")
        except OSError as e:
            logger.warning(f"Could not remove temporary file {path}: {e}")

    # ------------------------------------------------------------------
    # Periodic refresh
    # ------------------------------------------------------------------

    async def _loop(self, run_immediately: bool) -> None:
        if run_immediately:
            await self.trigger("startup")
        while True:
            await asyncio.sleep(self.interval)
            await self.trigger("periodic")

    def start(self, run_immediately: bool = True) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(run_immediately))
        logger.info(f"Auto-refresh started (every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Auto-refresh stopped")
