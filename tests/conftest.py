"""
Shared pytest fixtures for sheet fetcher tests.

Provides fixtures for:
- In-memory fake transport (no network)
- Recording sleep for retry delays
- Endpoint, validator and transfer client construction
- Temporary directories and isolated environment variables
- Logging capture
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.config import DEVELOPMENT, AppConfig
from core.errors import ConnectError, TransferError
from core.state import EndpointConfig
from shared.clients.retry import RetryPolicy
from shared.clients.transfer_client import TransferClient
from shared.files.synthetic import SyntheticSheetGenerator
from shared.files.validator import FileValidator


SAMPLE_CSV = (
    b"Month,Sales,Profit\n"
    b"Jan,100,10\n"
    b"Feb,200,-5\n"
    b"Mar,300,30\n"
)


# ============================================================================
# Fake Transport
# ============================================================================

class FakeHandle:
    def __init__(self, host: str, serial: int):
        self.host = host
        self.serial = serial


class FakeTransport:
    """
    Scriptable in-memory transport.

    Args:
        content: Bytes written by get()
        files: Names returned by list()
        connect_error / list_error / get_error / put_error / disconnect_error:
            Exceptions raised by the matching call
        get_failures: Number of get() calls that fail before succeeding
        connect_delay: Seconds connect() sleeps before answering
        get_gate: Event get() waits on before writing (for overlap tests)
    """

    def __init__(
        self,
        content: bytes = SAMPLE_CSV,
        files: Optional[List[str]] = None,
        connect_error: Optional[Exception] = None,
        list_error: Optional[Exception] = None,
        get_error: Optional[Exception] = None,
        put_error: Optional[Exception] = None,
        disconnect_error: Optional[Exception] = None,
        get_failures: int = 0,
        connect_delay: float = 0.0,
        get_gate: Optional[asyncio.Event] = None,
    ):
        self.content = content
        self.files = files if files is not None else ["data.xls", "report.csv"]
        self.connect_error = connect_error
        self.list_error = list_error
        self.get_error = get_error
        self.put_error = put_error
        self.disconnect_error = disconnect_error
        self.get_failures = get_failures
        self.connect_delay = connect_delay
        self.get_gate = get_gate

        self.calls: List[tuple] = []
        self.uploads: Dict[str, bytes] = {}
        self.open_handles = 0
        self.max_open_handles = 0
        self._serial = 0

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def connect(self, endpoint: EndpointConfig, timeout: float) -> Any:
        self.calls.append(("connect", endpoint.host))
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        self._serial += 1
        self.open_handles += 1
        self.max_open_handles = max(self.max_open_handles, self.open_handles)
        return FakeHandle(endpoint.host, self._serial)

    async def list(self, handle: Any, path: str) -> List[str]:
        self.calls.append(("list", path))
        await asyncio.sleep(0)
        if self.list_error is not None:
            raise self.list_error
        return list(self.files)

    async def get(self, handle: Any, remote_name: str, local_path: str) -> None:
        self.calls.append(("get", remote_name))
        if self.get_gate is not None:
            await self.get_gate.wait()
        await asyncio.sleep(0)
        if self.get_failures > 0:
            self.get_failures -= 1
            raise TransferError(f"550 {remote_name}: transient failure")
        if self.get_error is not None:
            raise self.get_error
        Path(local_path).write_bytes(self.content)

    async def put(self, handle: Any, local_path: str, remote_name: str) -> None:
        self.calls.append(("put", remote_name))
        if self.put_error is not None:
            raise self.put_error
        self.uploads[remote_name] = Path(local_path).read_bytes()

    async def disconnect(self, handle: Any) -> None:
        self.calls.append(("disconnect", handle.host))
        self.open_handles -= 1
        if self.disconnect_error is not None:
            raise self.disconnect_error


# ============================================================================
# Logging Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def configure_test_logging(caplog):
    """Configure logging for all tests."""
    caplog.set_level(logging.DEBUG)
    return caplog


# ============================================================================
# Component Fixtures
# ============================================================================

@pytest.fixture
def sleeper():
    """Drop-in for asyncio.sleep that records delays instead of waiting."""
    delays: List[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    fake_sleep.delays = delays
    return fake_sleep


@pytest.fixture
def retry_policy(sleeper) -> RetryPolicy:
    return RetryPolicy(max_attempts=3, sleep=sleeper)


@pytest.fixture
def endpoint() -> EndpointConfig:
    return EndpointConfig(
        host="ftp.test.local",
        port=2121,
        username="tester",
        password="s3cret",
        target_filename="report.csv",
    )


@pytest.fixture
def validator() -> FileValidator:
    return FileValidator(max_size=1024 * 1024, accepted_extensions=(".xls", ".xlsx", ".csv"))


@pytest.fixture
def download_dir(tmp_path: Path) -> Path:
    return tmp_path / "downloads"


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def transport_factory():
    """The FakeTransport class, for tests that script their own transport."""
    return FakeTransport


@pytest.fixture
def make_client(endpoint, validator, retry_policy, download_dir):
    """
    Factory for TransferClient instances over a FakeTransport.

    Usage:
        def test_something(make_client):
            client, transport, statuses = make_client(connect_error=ConnectError("refused"))
    """
    def _make(transport: Optional[FakeTransport] = None, *, allow_synthetic_fallback: bool = True,
              connection_timeout: float = 5.0, no_transport: bool = False, **transport_kwargs):
        if transport is None and not no_transport:
            transport = FakeTransport(**transport_kwargs)
        statuses: List = []
        client = TransferClient(
            endpoint,
            None if no_transport else transport,
            validator,
            retry_policy=retry_policy,
            download_dir=str(download_dir),
            connection_timeout=connection_timeout,
            allow_synthetic_fallback=allow_synthetic_fallback,
            synthetic_generator=SyntheticSheetGenerator(seed=7),
            status_listener=statuses.append,
        )
        return client, transport, statuses

    return _make


@pytest.fixture
def unreachable() -> ConnectError:
    return ConnectError("Could not connect to ftp.test.local:2121: [Errno 111] Connection refused")


@pytest.fixture
def test_config(tmp_path: Path) -> AppConfig:
    """Development tier pointed at temporary directories, single attempt, no auto refresh."""
    return DEVELOPMENT.model_copy(update={
        "ftp": DEVELOPMENT.ftp.model_copy(update={
            "default_host": "ftp.test.local",
            "default_filename": "report.csv",
            "retry_attempts": 1,
        }),
        "refresh": DEVELOPMENT.refresh.model_copy(update={
            "download_dir": str(tmp_path / "downloads"),
            "auto_refresh": False,
        }),
        "logging": DEVELOPMENT.logging.model_copy(update={
            "log_dir": str(tmp_path / "logs"),
        }),
        "credential_db_path": str(tmp_path / "credentials.db"),
    })


# ============================================================================
# Environment Fixtures
# ============================================================================

CONFIG_ENV_VARS = [
    "APP_ENV", "FTP_HOST", "FTP_PORT", "FTP_USERNAME", "FTP_PASSWORD", "FTP_FILENAME",
    "FTP_CONNECTION_TIMEOUT", "FTP_RETRY_ATTEMPTS", "REFRESH_INTERVAL", "AUTO_REFRESH",
    "MAX_FILE_SIZE", "SUPPORTED_FILE_TYPES", "DOWNLOAD_DIR", "ALLOW_SYNTHETIC_FALLBACK",
    "LOG_LEVEL", "LOG_DIR", "LOG_SINK_URL", "LOG_QUEUE_CAPACITY", "CREDENTIAL_DB_PATH",
    "FETCHER_ENCRYPTION_KEY",
]


@pytest.fixture
def clean_env(monkeypatch):
    """
    Remove every config variable for the test and restore afterwards,
    including anything a .env file loads during the test.
    """
    for name in CONFIG_ENV_VARS:
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)
    return monkeypatch
