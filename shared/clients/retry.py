import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    before_log,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.errors import NON_RETRYABLE_ERRORS, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]


class RetryPolicy:
    """
    Bounded exponential backoff around any async operation.

    Waits min(base_delay * 2^(attempt-1), max_delay) between attempts and
    raises RetryExhaustedError after the final failure. Content errors
    (validation/parse/series) are re-raised immediately without retrying.
    Holds no per-call state, so one instance can wrap nested operations.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        sleep: Optional[SleepFn] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep or asyncio.sleep

    def delay_for(self, attempt: int) -> float:
        """Backoff applied after the given failed attempt (1-based)."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def _retrying(self, operation_name: str, max_attempts: int) -> AsyncRetrying:
        def log_failure(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                f"{operation_name} failed on attempt "
                f"{retry_state.attempt_number}/{max_attempts}: {error}"
            )

        return AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            retry=retry_if_not_exception_type(NON_RETRYABLE_ERRORS),
            before=before_log(logger, logging.DEBUG),
            after=log_failure,
            sleep=self._sleep,
            reraise=False,
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
        max_attempts: Optional[int] = None,
    ) -> T:
        """
        Execute operation with retries.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            operation_name: Human-readable name used in logs and errors
            max_attempts: Override the policy's attempt count for this call

        Returns:
            Whatever the first successful attempt returned

        Raises:
            RetryExhaustedError: every attempt failed with a retryable error
        """
        attempts = max_attempts or self.max_attempts
        try:
            async for attempt in self._retrying(operation_name, attempts):
                with attempt:
                    result = await operation()
                outcome = attempt.retry_state.outcome
                if outcome is None or outcome.failed:
                    continue
                attempt_number = attempt.retry_state.attempt_number
                if attempt_number > 1:
                    logger.info(f"{operation_name} succeeded on attempt {attempt_number}")
                return result
        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.error(f"{operation_name} failed after {attempts} attempts: {last_error}")
            raise RetryExhaustedError(operation_name, attempts, last_error) from last_error
        raise RetryExhaustedError(operation_name, attempts, None)
