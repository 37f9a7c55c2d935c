# Sheet Fetcher Service - fetch cycle, parsing and HTTP surface
from .parser import parse_bytes, parse_file
from .series import build_series
from .scheduler import RefreshScheduler
from .presenters import FailureNotifier, LoggingRenderer, SeriesRenderer

__all__ = [
    "parse_bytes",
    "parse_file",
    "build_series",
    "RefreshScheduler",
    "FailureNotifier",
    "LoggingRenderer",
    "SeriesRenderer",
]
