"""
Transfer Client - connection lifecycle over a pluggable transport.

Every public operation drives its own DISCONNECTED -> CONNECTING ->
CONNECTED | ERROR -> DISCONNECTED cycle; no idle connection survives
between calls. Transport failures are retried through RetryPolicy, and a
download that exhausts its retries degrades to synthetic data (when the
policy allows it) instead of failing.
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Set

from core.errors import (
    ConnectError,
    FetcherError,
    RetryExhaustedError,
    TransferError,
    ValidationError,
)
from core.state import (
    ConnectionStatus,
    DownloadOutcome,
    EndpointConfig,
    FailedDownload,
    RealDownload,
    SyntheticDownload,
    TransferMetric,
)
from shared.files.synthetic import SyntheticSheetGenerator
from shared.files.validator import FileValidator
from shared.observability.metrics import record_transfer, set_connection_status
from .retry import RetryPolicy
from .transport import Transport

logger = logging.getLogger(__name__)

StatusListener = Callable[[ConnectionStatus], None]


class TransferClient:
    """
    Resilient client for one remote endpoint.

    Owns at most one connection handle at a time; an internal lock
    serializes attempts so two operations never share or overlap a handle.

    Args:
        endpoint: Initial endpoint configuration
        transport: Transport implementation, or None when unavailable
        validator: Pre-parse checks applied to every download
        retry_policy: Backoff policy (default: 3 attempts)
        download_dir: Directory receiving downloaded_<millis>.<ext> files
        connection_timeout: Seconds allowed per connect attempt
        allow_synthetic_fallback: Substitute placeholder data after failures
        synthetic_generator: Source of placeholder data
        status_listener: Called on every connection status change
    """

    def __init__(
        self,
        endpoint: EndpointConfig,
        transport: Optional[Transport],
        validator: FileValidator,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        download_dir: str = "data/downloads",
        connection_timeout: float = 30.0,
        allow_synthetic_fallback: bool = True,
        synthetic_generator: Optional[SyntheticSheetGenerator] = None,
        status_listener: Optional[StatusListener] = None,
    ):
        self._endpoint = endpoint
        self._transport = transport
        self._validator = validator
        self._retry = retry_policy or RetryPolicy()
        self.download_dir = Path(download_dir)
        self.connection_timeout = connection_timeout
        self.allow_synthetic_fallback = allow_synthetic_fallback
        self._synthetic = synthetic_generator or SyntheticSheetGenerator()
        self._status_listener = status_listener

        self._lock = asyncio.Lock()
        self._handle: Any = None
        self._status = ConnectionStatus.DISCONNECTED
        self._metrics: List[TransferMetric] = []
        self._late_releases: Set[asyncio.Task] = set()

        logger.info(f"TransferClient initialized for {endpoint.host}:{endpoint.port}")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        logger.debug(f"Connection status {self._status.value} -> {status.value}")
        self._status = status
        set_connection_status(status)
        if self._status_listener is not None:
            try:
                self._status_listener(status)
            except Exception as e:
                logger.warning(f"Status listener failed: {e}")

    def get_config(self) -> EndpointConfig:
        return self._endpoint

    def get_metrics(self) -> List[TransferMetric]:
        return list(self._metrics)

    def clear_metrics(self) -> None:
        self._metrics = []
        logger.debug("Connection metrics cleared")

    def _record(
        self,
        operation: str,
        started: float,
        byte_size: int,
        succeeded: bool,
        error: Optional[BaseException] = None,
        synthetic: bool = False,
    ) -> TransferMetric:
        metric = TransferMetric(
            operation=operation,
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
            byte_size=byte_size,
            succeeded=succeeded,
            error_detail=str(error) if error is not None else None,
            synthetic=synthetic,
        )
        self._metrics.append(metric)
        record_transfer(metric)
        return metric

    # ------------------------------------------------------------------
    # Connection cycle
    # ------------------------------------------------------------------

    async def _open(self, endpoint: EndpointConfig) -> Any:
        self._set_status(ConnectionStatus.CONNECTING)
        started = time.perf_counter()
        connecting = asyncio.ensure_future(self._transport.connect(endpoint, self.connection_timeout))
        try:
            handle = await asyncio.wait_for(asyncio.shield(connecting), timeout=self.connection_timeout)
        except asyncio.CancelledError:
            connecting.add_done_callback(self._release_late_handle)
            raise
        except asyncio.TimeoutError as e:
            # A thread-backed connect keeps running after the deadline
            connecting.add_done_callback(self._release_late_handle)
            raise ConnectError(
                f"Connection to {endpoint.host}:{endpoint.port} timed out "
                f"after {self.connection_timeout}s"
            ) from e
        except FetcherError:
            raise
        except Exception as e:
            raise ConnectError(f"Could not connect to {endpoint.host}:{endpoint.port}: {e}") from e

        self._handle = handle
        logger.info(
            f"Connected to {endpoint.host}:{endpoint.port} "
            f"in {(time.perf_counter() - started) * 1000:.0f}ms"
        )
        return handle

    def _release_late_handle(self, connecting: "asyncio.Future[Any]") -> None:
        if connecting.cancelled() or connecting.exception() is not None:
            return
        logger.info("Closing connection that completed after its timeout")
        task = connecting.get_loop().create_task(self._disconnect_quietly(connecting.result()))
        self._late_releases.add(task)
        task.add_done_callback(self._late_releases.discard)

    async def _disconnect_quietly(self, handle: Any) -> None:
        try:
            await self._transport.disconnect(handle)
        except Exception as e:
            logger.warning(f"Error disconnecting transport handle: {e}")

    async def _release(self) -> None:
        """Best-effort disconnect; failures are logged, never raised."""
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await self._transport.disconnect(handle)
            logger.debug("Transport handle disconnected")
        except Exception as e:
            logger.warning(f"Error disconnecting transport handle: {e}")

    @asynccontextmanager
    async def _connection(self, endpoint: EndpointConfig, mark_connected: bool = True) -> AsyncIterator[Any]:
        """
        One full connection cycle.

        mark_connected=False leaves the CONNECTED transition to the caller
        (the connectivity test only counts as connected once listing works).
        """
        try:
            handle = await self._open(endpoint)
            if mark_connected:
                self._set_status(ConnectionStatus.CONNECTED)
            yield handle
        except Exception:
            self._set_status(ConnectionStatus.ERROR)
            raise
        finally:
            await self._release()
            self._set_status(ConnectionStatus.DISCONNECTED)

    @staticmethod
    async def _transfer_step(call: Awaitable[Any], description: str) -> Any:
        try:
            return await call
        except FetcherError:
            raise
        except Exception as e:
            raise TransferError(f"{description} failed: {e}") from e

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def test_connection(self) -> bool:
        """Connect, list the root directory, disconnect. Retried."""
        if self._transport is None:
            logger.warning("Connection test skipped: no transport available")
            return False

        async def attempt() -> bool:
            started = time.perf_counter()
            try:
                async with self._lock:
                    endpoint = self._endpoint
                    logger.info(f"Testing connection to {endpoint.host}:{endpoint.port}")
                    async with self._connection(endpoint, mark_connected=False) as handle:
                        await self._transfer_step(self._transport.list(handle, "/"), "Root listing")
                        self._set_status(ConnectionStatus.CONNECTED)
            except Exception as e:
                self._record("test_connection", started, 0, False, e)
                raise
            self._record("test_connection", started, 0, True)
            return True

        try:
            result = await self._retry.run(attempt, "Connection Test")
        except RetryExhaustedError as e:
            logger.error(f"Connection test failed: {e}")
            return False
        logger.info(f"Connection test successful for {self._endpoint.host}")
        return result

    def _local_path_for(self, endpoint: EndpointConfig) -> Path:
        self.download_dir.mkdir(parents=True, exist_ok=True)
        millis = int(time.time() * 1000)
        path = self.download_dir / f"downloaded_{millis}.{endpoint.target_extension}"
        while path.exists():
            millis += 1
            path = self.download_dir / f"downloaded_{millis}.{endpoint.target_extension}"
        return path

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove partial download {path}: {e}")

    async def _download_attempt(self) -> RealDownload:
        started = time.perf_counter()
        local_path: Optional[Path] = None
        try:
            async with self._lock:
                endpoint = self._endpoint
                local_path = self._local_path_for(endpoint)
                logger.info(
                    f"Starting file download of {endpoint.target_filename} from {endpoint.host}"
                )
                async with self._connection(endpoint) as handle:
                    await self._transfer_step(
                        self._transport.get(handle, endpoint.target_filename, str(local_path)),
                        f"Download of {endpoint.target_filename}",
                    )
            check = self._validator.validate(local_path)
        except Exception as e:
            self._record("download", started, 0, False, e)
            if local_path is not None:
                self._discard(local_path)
            raise

        metric = self._record("download", started, check.size, True)
        logger.info(
            f"File downloaded successfully: {check.path} ({check.size} bytes, "
            f"{metric.duration_ms:.0f}ms)"
        )
        return RealDownload(path=check.path, size=check.size)

    async def download_file(self) -> DownloadOutcome:
        """
        Fetch the configured target file.

        Returns:
            RealDownload on success, SyntheticDownload when transfer was
            unavailable after retries, FailedDownload when the artifact
            failed validation or synthetic fallback is disabled
        """
        if self._transport is None:
            return await self.synthetic_download("transport unavailable")

        try:
            return await self._retry.run(self._download_attempt, "File Download")
        except ValidationError as e:
            logger.error(f"Downloaded file rejected: {e}")
            return FailedDownload(error=e)
        except RetryExhaustedError as e:
            return await self.synthetic_download(
                f"download failed after {e.attempts} attempts: {e.last_error}",
                error=e,
            )

    async def synthetic_download(self, reason: str, error: Optional[Exception] = None) -> DownloadOutcome:
        """
        Produce placeholder data in place of a real transfer.

        Always logged at WARNING and recorded as a synthetic metric so the
        substitution is never mistaken for a real download.
        """
        started = time.perf_counter()
        if not self.allow_synthetic_fallback:
            logger.error(f"Download unavailable and synthetic fallback disabled: {reason}")
            return FailedDownload(error=error or ConnectError(reason))

        path = self._synthetic.write(self.download_dir)
        self._record(
            "download",
            started,
            path.stat().st_size,
            False,
            error=error or ConnectError(reason),
            synthetic=True,
        )
        logger.warning(
            f"Using SYNTHETIC data in place of {self._endpoint.target_filename}: {reason}",
            extra={"payload": {"synthetic": True, "reason": reason, "path": str(path)}},
        )
        return SyntheticDownload(path=str(path), reason=reason)

    async def list_files(self, directory: str = "/") -> List[str]:
        """List a remote directory. Returns [] on failure."""
        if self._transport is None:
            logger.warning("Cannot list files: no transport available")
            return []

        async def attempt() -> List[str]:
            started = time.perf_counter()
            try:
                async with self._lock:
                    endpoint = self._endpoint
                    async with self._connection(endpoint) as handle:
                        names = await self._transfer_step(
                            self._transport.list(handle, directory), f"Listing {directory}"
                        )
            except Exception as e:
                self._record("list", started, 0, False, e)
                raise
            self._record("list", started, 0, True)
            return list(names)

        try:
            names = await self._retry.run(attempt, "List Files")
        except RetryExhaustedError as e:
            logger.error(f"Listing {directory} failed: {e}")
            return []
        logger.info(f"Files listed successfully: {len(names)} entries in {directory}")
        return names

    async def upload_file(self, local_path: str, remote_name: str) -> bool:
        """Upload a local file. Returns False if it is missing or every attempt fails."""
        source = Path(local_path)
        if not source.is_file():
            logger.error(f"Local file does not exist: {local_path}")
            return False
        if self._transport is None:
            logger.warning("Cannot upload: no transport available")
            return False
        size = source.stat().st_size

        async def attempt() -> bool:
            started = time.perf_counter()
            try:
                async with self._lock:
                    endpoint = self._endpoint
                    async with self._connection(endpoint) as handle:
                        await self._transfer_step(
                            self._transport.put(handle, str(source), remote_name),
                            f"Upload of {source.name}",
                        )
            except Exception as e:
                self._record("upload", started, 0, False, e)
                raise
            self._record("upload", started, size, True)
            return True

        try:
            await self._retry.run(attempt, "File Upload")
        except RetryExhaustedError as e:
            logger.error(f"Upload of {source.name} failed: {e}")
            return False
        logger.info(f"File uploaded successfully: {source.name} -> {remote_name} ({size} bytes)")
        return True

    async def update_config(self, endpoint: EndpointConfig) -> None:
        """Tear down any live handle, then adopt the new endpoint."""
        async with self._lock:
            logger.info(f"Updating endpoint configuration: {self._endpoint.host} -> {endpoint.host}")
            await self._release()
            self._set_status(ConnectionStatus.DISCONNECTED)
            self._endpoint = endpoint

    async def disconnect(self) -> None:
        async with self._lock:
            await self._release()
            self._set_status(ConnectionStatus.DISCONNECTED)
