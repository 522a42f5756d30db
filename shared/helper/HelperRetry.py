"""Retry policy shared by the uploader, the embedding batcher and the answer generator."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from shared.errors import PermanentValidationError, ProviderAuthError, TransientNetworkError

T = TypeVar("T")


def is_retryable_default(error: BaseException) -> bool:
    """Everything except permanent validation and auth failures is worth another attempt."""
    return not isinstance(error, (PermanentValidationError, ProviderAuthError))


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


class RetryPolicy:
    """Exponential backoff retry policy on top of tenacity.

    ``max_attempts`` counts every call, the first one included. After the n-th
    failed attempt the policy waits ``base_delay * 2^(n-1)`` seconds, capped at
    ``max_delay``.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        is_retryable: Callable[[BaseException], bool] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}.")
        self.max_attempts = int(max_attempts)
        self.base_delay = float(base_delay)
        self.max_delay = float(max_delay)
        self._is_retryable = is_retryable or is_retryable_default

    def backoff(self, attempt: int) -> float:
        """Return the wait in seconds after the given failed attempt (1-based).

        Args:
            attempt (int): Number of attempts that have failed so far.

        Returns:
            float: Seconds to wait before the next attempt.
        """
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def is_retryable(self, error: BaseException) -> bool:
        return self._is_retryable(error)

    def _retrying(self, label: str, log: logging.Logger) -> AsyncRetrying:
        def _log_retry(retry_state: RetryCallState) -> None:
            log.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.1fs.",
                label,
                retry_state.attempt_number,
                self.max_attempts,
                retry_state.outcome.exception(),
                retry_state.next_action.sleep,
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, min=0, max=self.max_delay),
            retry=retry_if_exception(self.is_retryable),
            before_sleep=_log_retry,
            sleep=_sleep,
            reraise=True,
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "operation",
        timeout: float | None = None,
        logger: logging.Logger | None = None,
    ) -> T:
        """Run ``operation`` until it succeeds, fails permanently, or attempts run out.

        Args:
            operation (Callable[[], Awaitable[T]]): Factory producing a fresh awaitable per attempt.
            label (str): Human-readable name used in log lines.
            timeout (float | None): Per-attempt timeout in seconds. A timed-out attempt is
                cancelled and counted as a TransientNetworkError.
            logger (logging.Logger | None): Logger for attempt failures.

        Returns:
            T: The result of the first successful attempt.

        Raises:
            Exception: The last error once attempts are exhausted, or the first
                non-retryable error immediately.
        """
        log = logger or logging.getLogger(__name__)

        async def _attempt() -> T:
            if timeout is None:
                return await operation()
            try:
                return await asyncio.wait_for(operation(), timeout=timeout)
            except asyncio.TimeoutError:
                raise TransientNetworkError(f"{label} timed out after {timeout}s.")

        try:
            async for attempt in self._retrying(label, log):
                with attempt:
                    return await _attempt()
        except Exception as exc:
            if self.is_retryable(exc):
                log.error("%s failed after %d attempts: %s", label, self.max_attempts, exc)
            else:
                log.error("%s failed with a non-retryable error: %s", label, exc)
            raise
