"""
Transport capability - the pluggable remote file endpoint.

The transfer client only drives the five operations below; wire framing
belongs to the implementation. FtpTransport wraps the standard library's
ftplib and runs its blocking calls in a worker thread.
"""
import asyncio
import ftplib
import logging
import os
from typing import Any, List, Protocol, runtime_checkable

from core.errors import ConnectError, TransferError
from core.state import EndpointConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class Transport(Protocol):
    """
    Protocol defining the remote file endpoint.

    Any class implementing these coroutines is a valid transport. connect()
    returns an opaque handle that is passed back to the other calls.
    disconnect() must never raise.
    """

    async def connect(self, endpoint: EndpointConfig, timeout: float) -> Any:
        ...

    async def list(self, handle: Any, path: str) -> List[str]:
        ...

    async def get(self, handle: Any, remote_name: str, local_path: str) -> None:
        ...

    async def put(self, handle: Any, local_path: str, remote_name: str) -> None:
        ...

    async def disconnect(self, handle: Any) -> None:
        ...


class FtpTransport:
    """
    FTP / FTPS transport over ftplib.

    Args:
        use_tls: Negotiate explicit FTPS and protect the data channel
        passive: Use passive mode for data connections
    """

    def __init__(self, use_tls: bool = False, passive: bool = True):
        self.use_tls = use_tls
        self.passive = passive

    def _connect_sync(self, endpoint: EndpointConfig, timeout: float) -> ftplib.FTP:
        ftp = ftplib.FTP_TLS() if self.use_tls else ftplib.FTP()
        try:
            ftp.connect(endpoint.host, endpoint.port, timeout=timeout)
            ftp.login(endpoint.username, endpoint.password)
            if self.use_tls:
                ftp.prot_p()
            ftp.set_pasv(self.passive)
        except ftplib.all_errors + (ValueError,) as e:
            ftp.close()
            raise ConnectError(f"Could not connect to {endpoint.host}:{endpoint.port}: {e}") from e
        logger.debug(f"FTP session opened to {endpoint.host}:{endpoint.port}")
        return ftp

    async def connect(self, endpoint: EndpointConfig, timeout: float) -> ftplib.FTP:
        return await asyncio.to_thread(self._connect_sync, endpoint, timeout)

    def _list_sync(self, handle: ftplib.FTP, path: str) -> List[str]:
        try:
            return handle.nlst(path)
        except ftplib.error_perm as e:
            # Some servers answer an empty directory with 550
            if str(e).startswith("550"):
                return []
            raise TransferError(f"Listing {path} failed: {e}") from e
        except ftplib.all_errors as e:
            raise TransferError(f"Listing {path} failed: {e}") from e

    async def list(self, handle: ftplib.FTP, path: str) -> List[str]:
        return await asyncio.to_thread(self._list_sync, handle, path)

    def _get_sync(self, handle: ftplib.FTP, remote_name: str, local_path: str) -> None:
        try:
            with open(local_path, "wb") as f:
                handle.retrbinary(f"RETR {remote_name}", f.write)
        except ftplib.all_errors as e:
            raise TransferError(f"Download of {remote_name} failed: {e}") from e

    async def get(self, handle: ftplib.FTP, remote_name: str, local_path: str) -> None:
        await asyncio.to_thread(self._get_sync, handle, remote_name, local_path)

    def _put_sync(self, handle: ftplib.FTP, local_path: str, remote_name: str) -> None:
        try:
            with open(local_path, "rb") as f:
                handle.storbinary(f"STOR {remote_name}", f)
        except ftplib.all_errors as e:
            raise TransferError(f"Upload of {os.path.basename(local_path)} failed: {e}") from e

    async def put(self, handle: ftplib.FTP, local_path: str, remote_name: str) -> None:
        await asyncio.to_thread(self._put_sync, handle, local_path, remote_name)

    def _disconnect_sync(self, handle: ftplib.FTP) -> None:
        try:
            handle.quit()
        except ftplib.all_errors as e:
            logger.debug(f"FTP QUIT failed, closing socket: {e}")
            handle.close()

    async def disconnect(self, handle: ftplib.FTP) -> None:
        try:
            await asyncio.to_thread(self._disconnect_sync, handle)
        except Exception as e:
            logger.warning(f"Error disconnecting FTP client: {e}")
