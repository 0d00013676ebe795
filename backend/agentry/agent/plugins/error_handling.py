"""
Error-handling plugin: retry and circuit breaking around provider calls.

This is the one plugin that sits on the control path. The pipeline routes
provider calls through ``execute_with_retry``; when retries are exhausted
the last provider error is raised unchanged.
"""

import asyncio
import inspect
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..errors import AgentError, CircuitBreakerOpenError
from .base import BasePlugin, PluginContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorHandlingStrategy(str, Enum):
    SIMPLE = "simple"
    EXPONENTIAL_BACKOFF = "exponential_backoff"
    CIRCUIT_BREAKER = "circuit_breaker"
    SILENT = "silent"


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, AgentError):
        return error.recoverable and not isinstance(error, CircuitBreakerOpenError)
    return True


class ErrorHandlingPlugin(BasePlugin):
    name = "error_handling"

    def __init__(
        self,
        strategy: ErrorHandlingStrategy = ErrorHandlingStrategy.SIMPLE,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        failure_threshold: int = 5,
        circuit_breaker_timeout: float = 60.0,
        custom_error_handler: Optional[Callable[[BaseException, Dict[str, Any]], Any]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        name: Optional[str] = None,
        enabled: bool = True,
    ):
        super().__init__(name=name, enabled=enabled)
        self.strategy = ErrorHandlingStrategy(strategy)
        self.max_retries = 0 if self.strategy == ErrorHandlingStrategy.SILENT else max_retries
        self.retry_delay = retry_delay
        self.failure_threshold = failure_threshold
        self.circuit_breaker_timeout = circuit_breaker_timeout
        self.custom_error_handler = custom_error_handler
        self._sleep = sleep

        self.failure_count = 0
        self.circuit_state = CircuitState.CLOSED
        self.circuit_opened_at: Optional[float] = None
        self.total_errors = 0
        self.total_retries = 0
        self.recovered_calls = 0

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------
    def _check_circuit(self) -> None:
        if self.strategy != ErrorHandlingStrategy.CIRCUIT_BREAKER or self.circuit_state == CircuitState.CLOSED:
            return
        if self.circuit_state == CircuitState.OPEN:
            elapsed = time.monotonic() - (self.circuit_opened_at or 0.0)
            if elapsed >= self.circuit_breaker_timeout:
                logger.info("Circuit breaker half-open, allowing a trial call")
                self.circuit_state = CircuitState.HALF_OPEN
                return
            raise CircuitBreakerOpenError(
                f"Circuit breaker is open after {self.failure_count} consecutive failures; "
                f"retry in {self.circuit_breaker_timeout - elapsed:.1f}s"
            )

    def _record_failure(self) -> None:
        self.failure_count += 1
        if self.strategy != ErrorHandlingStrategy.CIRCUIT_BREAKER:
            return
        if self.circuit_state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.circuit_state != CircuitState.OPEN:
                logger.warning(f"Circuit breaker opened after {self.failure_count} failures")
            self.circuit_state = CircuitState.OPEN
            self.circuit_opened_at = time.monotonic()

    def _record_success(self, attempt: int) -> None:
        if attempt > 0:
            self.recovered_calls += 1
            logger.info(f"Provider call succeeded after {attempt} retries")
        self.failure_count = 0
        self.circuit_state = CircuitState.CLOSED
        self.circuit_opened_at = None

    def reset_circuit_breaker(self) -> None:
        self.failure_count = 0
        self.circuit_state = CircuitState.CLOSED
        self.circuit_opened_at = None

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------
    def _delay_for(self, attempt: int) -> float:
        if self.strategy == ErrorHandlingStrategy.EXPONENTIAL_BACKOFF:
            return self.retry_delay * (2 ** (attempt - 1))
        return self.retry_delay

    async def _handle_error(self, error: BaseException, details: Dict[str, Any]) -> None:
        self.total_errors += 1
        if self.strategy != ErrorHandlingStrategy.SILENT:
            logger.error(f"Provider call failed (attempt {details.get('attempt')}): {error}")
        if self.custom_error_handler is not None:
            try:
                outcome = self.custom_error_handler(error, details)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Custom error handler failed: {e}")

    async def execute_with_retry(self, call: Callable[[], Awaitable[T]],
                                 context: Optional[PluginContext] = None) -> T:
        attempt = 0
        while True:
            self._check_circuit()
            try:
                result = await call()
            except Exception as e:
                self._record_failure()
                details = {"attempt": attempt + 1, "max_retries": self.max_retries,
                           "execution_id": context.execution_id if context else None}
                await self._handle_error(e, details)
                if attempt >= self.max_retries or not is_retryable(e):
                    raise
                attempt += 1
                self.total_retries += 1
                delay = self._delay_for(attempt)
                logger.debug(f"Retrying provider call in {delay}s (retry {attempt}/{self.max_retries})")
                await self._sleep(delay)
                continue
            self._record_success(attempt)
            return result

    def get_stats(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "failure_count": self.failure_count,
            "circuit_state": self.circuit_state.value,
            "total_errors": self.total_errors,
            "total_retries": self.total_retries,
            "recovered_calls": self.recovered_calls,
        }
