"""Retry with exponential backoff, and a circuit breaker for the AI provider."""
import asyncio
import logging
import random
import time
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from app.errors import ErrorType
from app.exceptions import AppException, CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Retries an async operation on retryable AppExceptions.

    Delay before attempt n (n >= 1) is min(base_delay * factor**(n-1), max_delay)
    plus up to 10% jitter. Anything that is not a retryable AppException is
    raised straight away.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        factor: float = 2.0,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ):
        self.max_retries = max(0, max_retries)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.factor = factor
        self.sleep = sleep
        self.jitter = jitter

    def delay_for(self, attempt: int) -> float:
        delay = min(self.base_delay * self.factor ** (attempt - 1), self.max_delay)
        return delay + self.jitter() * 0.1 * delay

    async def run(self, operation: Callable[[], Awaitable[T]], context: str = "AI request") -> T:
        last_error: AppException | None = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                delay = self.delay_for(attempt)
                logger.info(f"Retrying {context} (attempt {attempt}/{self.max_retries}) after {delay:.2f}s")
                await self.sleep(delay)

            try:
                return await operation()
            except AppException as e:
                if not e.retryable:
                    raise
                last_error = e
                logger.warning(f"Attempt {attempt + 1} failed for {context}: {e.message}")

        attempts = self.max_retries + 1
        raise AppException(
            ErrorType.MAX_RETRIES_EXCEEDED,
            f"All {attempts} attempts failed. Last error: {last_error.message}",
            status=last_error.status,
            request_id=last_error.request_id,
            details={"attempts": attempts, "last_error": last_error.error_type.value},
        ) from last_error


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Stops calling a failing provider for `reset_timeout` seconds."""

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.clock = clock
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: float | None = None

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.state == CircuitState.OPEN:
            if self.clock() - self.last_failure_time > self.reset_timeout:
                self.state = CircuitState.HALF_OPEN
                logger.info("Circuit breaker entering half-open state")
            else:
                raise CircuitOpenError()

        try:
            result = await operation()
        except AppException as e:
            # Cancellations and malformed replies are not provider failures
            if e.error_type not in (ErrorType.REQUEST_CANCELLED, ErrorType.INVALID_RESPONSE):
                self._on_failure()
            raise
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _on_success(self) -> None:
        self.failure_count = 0
        if self.state == CircuitState.HALF_OPEN:
            logger.info("Circuit breaker closed")
        self.state = CircuitState.CLOSED

    def _on_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self.clock()
        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(f"Circuit breaker opened after {self.failure_count} failures")
            self.state = CircuitState.OPEN

    def get_state(self) -> dict:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time,
        }

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time = None
