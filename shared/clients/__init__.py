from .retry import RetryPolicy
from .transport import Transport, FtpTransport
from .transfer_client import TransferClient

__all__ = ["RetryPolicy", "Transport", "FtpTransport", "TransferClient"]
