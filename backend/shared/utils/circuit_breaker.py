"""
Circuit breaker for outbound death-record source calls.

States:
  CLOSED   : normal operation, lookups pass through
  OPEN     : too many consecutive failures, lookups are rejected without a network call
  HALF_OPEN: after the recovery window, a single trial lookup decides whether to close again
"""
from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Callable, Coroutine, TypeVar

from shared.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised when the circuit is open and calls are being rejected."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"{name} temporarily disabled after repeated failures; retry in {retry_after:.0f}s")


class CircuitBreaker:
    """
    Async circuit breaker guarding one source.

    Args:
        name: Source name, used in logs and error messages.
        failure_threshold: Consecutive failures before opening the circuit.
        recovery_timeout_s: Seconds to stay OPEN before allowing a trial call.
        clock: Monotonic time source; injectable for tests.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout_s = recovery_timeout_s
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float = 0.0
        self._trial_in_flight = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN:
            if self._clock() - self._opened_at >= self.recovery_timeout_s:
                return CircuitState.HALF_OPEN
        return self._state

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
        }

    async def call(
        self, func: Callable[..., Coroutine[Any, Any, T]], *args: Any, **kwargs: Any
    ) -> T:
        current = self.state

        if current == CircuitState.OPEN:
            retry_after = self.recovery_timeout_s - (self._clock() - self._opened_at)
            raise CircuitBreakerOpen(self.name, max(retry_after, 1.0))

        if current == CircuitState.HALF_OPEN:
            async with self._lock:
                if self._trial_in_flight:
                    raise CircuitBreakerOpen(self.name, 1.0)
                self._trial_in_flight = True

        trial = current == CircuitState.HALF_OPEN
        try:
            result = await func(*args, **kwargs)
        except Exception as exc:
            await self._on_failure(exc, trial=trial)
            raise
        except BaseException:
            # Cancelled mid-trial: free the slot so the next call can try again.
            if trial:
                self._trial_in_flight = False
            raise
        await self._on_success()
        return result

    async def _on_success(self) -> None:
        async with self._lock:
            if self._state == CircuitState.OPEN:
                logger.info("circuit_breaker_closed", name=self.name)
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._trial_in_flight = False

    async def _on_failure(self, exc: Exception, trial: bool) -> None:
        async with self._lock:
            self._failure_count += 1
            if trial:
                self._trial_in_flight = False
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
                logger.warning("circuit_breaker_reopened", name=self.name, error=str(exc))
            elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
                logger.warning(
                    "circuit_breaker_opened",
                    name=self.name,
                    failures=self._failure_count,
                    error=str(exc),
                )
