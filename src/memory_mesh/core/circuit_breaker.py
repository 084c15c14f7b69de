"""Circuit breaker and retry policy for provider calls."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Generic, TypeVar

from memory_mesh.core.base import ServiceErrorDetails
from memory_mesh.core.errors import RateLimitError, ServiceError, TimeoutError
from memory_mesh.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker(Generic[T]):
    """Stops calling a provider after repeated failures.

    Closed counts consecutive failures and opens at ``failure_threshold``.
    Open rejects calls with a ServiceError until ``recovery_timeout`` has
    passed, then lets trial calls through half-open: ``success_threshold``
    successes close it again, a single failure reopens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        expected_exception_types: tuple[type[Exception], ...] = (Exception,),
        success_threshold: int = 2,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception_types = expected_exception_types
        self.success_threshold = success_threshold

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at: float | None = None
        self.last_exception: Exception | None = None

    def _allow_call(self) -> bool:
        if self.state != CircuitState.OPEN:
            return True
        if self.opened_at is not None and time.monotonic() - self.opened_at >= self.recovery_timeout:
            logger.info(f"Circuit breaker '{self.name}' half-open, letting a trial call through")
            self.state = CircuitState.HALF_OPEN
            self.success_count = 0
            return True
        return False

    def _on_success(self) -> None:
        if self.state == CircuitState.CLOSED:
            self.failure_count = 0
            return
        self.success_count += 1
        if self.success_count >= self.success_threshold:
            logger.info(f"Circuit breaker '{self.name}' closed")
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.last_exception = None

    def _on_failure(self, exception: Exception) -> None:
        self.last_exception = exception
        self.failure_count += 1
        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            logger.error(
                f"Circuit breaker '{self.name}' open after {self.failure_count} failures",
                last_exception=str(exception),
            )
            self.state = CircuitState.OPEN
            self.opened_at = time.monotonic()

    async def call_async(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``func`` unless the circuit is open.

        Raises:
            ServiceError: The circuit is open
        """
        if not self._allow_call():
            message = f"Circuit breaker '{self.name}' is open"
            if self.last_exception:
                message += f" (last error: {self.last_exception})"
            raise ServiceError(
                message,
                details=ServiceErrorDetails(
                    source="circuit_breaker", operation="call_async", service_name=self.name, status_code=503
                ),
            )

        try:
            result = await func(*args, **kwargs)
        except self.expected_exception_types as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result


class RetryWithCircuitBreaker:
    """Retries transient provider errors with exponential backoff.

    Only ``retryable_exceptions`` are retried. Anything else, including the
    ServiceError of an open circuit, propagates on the first failure.
    """

    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        backoff_factor: float = 2.0,
        max_delay: float = 60.0,
        retryable_exceptions: tuple[type[Exception], ...] = (RateLimitError, TimeoutError),
    ):
        self.circuit_breaker = circuit_breaker
        self.max_retries = max(1, max_retries)
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.max_delay = max_delay
        self.retryable_exceptions = retryable_exceptions

    async def call_async(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        delay = self.initial_delay
        attempt = 1
        while True:
            try:
                return await self.circuit_breaker.call_async(func, *args, **kwargs)
            except self.retryable_exceptions as e:
                if attempt >= self.max_retries:
                    logger.error(f"'{self.circuit_breaker.name}' failed after {attempt} attempts: {e}")
                    raise
                logger.warning(
                    f"'{self.circuit_breaker.name}' attempt {attempt} failed, retrying in {delay:.1f}s",
                    error=str(e),
                )
                await asyncio.sleep(delay)
                delay = min(delay * self.backoff_factor, self.max_delay)
                attempt += 1
