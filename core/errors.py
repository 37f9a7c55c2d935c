"""
Error taxonomy for the fetch pipeline.

Transport failures (ConnectError, TransferError) are retryable. Content
failures (ValidationError, ParseError, SeriesError) are not: retrying will
not fix a malformed file, so they propagate straight to the fetch cycle.
"""

from enum import Enum
from typing import Optional


class FetcherError(Exception):
    """Base exception for every pipeline failure."""
    pass


class ConnectError(FetcherError):
    """Raised when the remote endpoint is unreachable or rejects the login."""
    pass


class TransferError(FetcherError):
    """Raised when a get/put/list fails on an open connection."""
    pass


class ValidationReason(str, Enum):
    """Why a fetched artifact was rejected before parsing."""
    NOT_FOUND = "not_found"
    EMPTY = "empty"
    TOO_LARGE = "too_large"


class ValidationError(FetcherError):
    """Raised when a local artifact fails its pre-parse checks."""

    def __init__(self, reason: ValidationReason, path: str, detail: str = ""):
        self.reason = reason
        self.path = path
        msg = f"File validation failed ({reason.value}): {path}"
        if detail:
            msg = f"{msg} - {detail}"
        super().__init__(msg)


class ParseError(FetcherError):
    """Raised when neither decoder produced a usable row grid."""

    reason = "unparseable"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Unparseable data file: {detail}")


class SeriesError(FetcherError):
    """Raised when no column survives numeric coercion."""

    reason = "no_numeric_data"

    def __init__(self, detail: str = "no column contains a non-zero numeric value"):
        self.detail = detail
        super().__init__(f"No numeric data: {detail}")


class RetryExhaustedError(FetcherError):
    """
    Raised by RetryPolicy after the final failed attempt.

    Attributes:
        operation: Human-readable operation name
        attempts: Number of attempts made
        last_error: Exception raised by the final attempt
    """

    def __init__(self, operation: str, attempts: int, last_error: Optional[BaseException]):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")


# Errors the retry engine must never retry
NON_RETRYABLE_ERRORS = (ValidationError, ParseError, SeriesError)
