"""
Core types for the sheet fetcher.

- Pipeline records and endpoint configuration (state)
- Environment-tiered application configuration (config)
- Error taxonomy shared by every stage (errors)

Example:
    >>> from core import load_config, EndpointConfig
    >>> config = load_config("development")
    >>> endpoint = config.default_endpoint()
"""

from .state import (
    ConnectionStatus,
    EndpointConfig,
    TransferMetric,
    RowGrid,
    Dataset,
    ProportionalEntry,
    SeriesModel,
    LogSeverity,
    LogEvent,
    RealDownload,
    SyntheticDownload,
    FailedDownload,
    DownloadOutcome,
    CycleResult,
)
from .config import AppConfig, ConfigLoader, load_config, DEVELOPMENT, PRODUCTION
from .errors import (
    FetcherError,
    ConnectError,
    TransferError,
    ValidationError,
    ValidationReason,
    ParseError,
    SeriesError,
    RetryExhaustedError,
)

__all__ = [
    "ConnectionStatus",
    "EndpointConfig",
    "TransferMetric",
    "RowGrid",
    "Dataset",
    "ProportionalEntry",
    "SeriesModel",
    "LogSeverity",
    "LogEvent",
    "RealDownload",
    "SyntheticDownload",
    "FailedDownload",
    "DownloadOutcome",
    "CycleResult",
    "AppConfig",
    "ConfigLoader",
    "load_config",
    "DEVELOPMENT",
    "PRODUCTION",
    "FetcherError",
    "ConnectError",
    "TransferError",
    "ValidationError",
    "ValidationReason",
    "ParseError",
    "SeriesError",
    "RetryExhaustedError",
]

__version__ = "1.0.0"
