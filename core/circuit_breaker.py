"""
Circuit Breaker for Video Provider Submissions

Rejects submissions to a provider that has failed repeatedly, so a job fails
fast with a clear "provider unavailable" error instead of queueing yet another
remote generation against an outage.

States:
- CLOSED: Normal operation, submissions pass through
- OPEN: Failing, submissions are rejected immediately
- HALF_OPEN: Testing recovery, a limited number of submissions allowed

Only the submit/extend HTTP round trip is wrapped. Polling and subscribe waits
are bounded by the OperationPoller and the provider queue respectively.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""
    failure_threshold: int = 5  # Consecutive failures before opening
    recovery_timeout: float = 30.0  # Seconds before trying half-open
    half_open_max_calls: int = 1
    success_threshold: int = 1  # Successes in half-open to close
    excluded_exceptions: tuple = ()  # Exceptions that don't count as failures


@dataclass
class CircuitBreakerStats:
    """Runtime statistics for the circuit breaker."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    half_open_calls: int = 0
    last_failure_time: float = 0
    state_changed_at: float = field(default_factory=time.monotonic)
    total_calls: int = 0
    total_failures: int = 0


class CircuitBreakerOpen(Exception):
    """Raised when circuit breaker is open and the submission is rejected."""

    def __init__(self, service_name: str, retry_after: float):
        self.service_name = service_name
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker is OPEN for {service_name}. "
            f"Retry after {retry_after:.1f} seconds."
        )


class CircuitBreaker:
    """
    Circuit breaker guarding one provider's submission endpoint.

    Usage:
        breaker = get_provider_breaker("short-clip")
        operation = await breaker.call(client.submit, payload)
    """

    def __init__(
        self,
        service_name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self.stats = CircuitBreakerStats(state_changed_at=clock())
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self.stats.state

    @property
    def is_open(self) -> bool:
        return self.stats.state == CircuitState.OPEN

    def _retry_after(self) -> float:
        elapsed = self._clock() - self.stats.state_changed_at
        return max(0.0, self.config.recovery_timeout - elapsed)

    def _transition_to(self, new_state: CircuitState):
        old_state = self.stats.state
        self.stats.state = new_state
        self.stats.state_changed_at = self._clock()

        if new_state == CircuitState.HALF_OPEN:
            self.stats.half_open_calls = 0
            self.stats.success_count = 0

        logger.info(
            f"Circuit breaker [{self.service_name}]: {old_state.value} -> {new_state.value}"
        )

    async def _before_call(self):
        async with self._lock:
            self.stats.total_calls += 1

            if self.stats.state == CircuitState.OPEN:
                if self._retry_after() > 0:
                    raise CircuitBreakerOpen(self.service_name, self._retry_after())
                self._transition_to(CircuitState.HALF_OPEN)

            if self.stats.state == CircuitState.HALF_OPEN:
                if self.stats.half_open_calls >= self.config.half_open_max_calls:
                    raise CircuitBreakerOpen(self.service_name, self.config.recovery_timeout)
                self.stats.half_open_calls += 1

    async def _on_success(self):
        async with self._lock:
            self.stats.success_count += 1
            self.stats.failure_count = 0

            if (
                self.stats.state == CircuitState.HALF_OPEN
                and self.stats.success_count >= self.config.success_threshold
            ):
                self._transition_to(CircuitState.CLOSED)

    async def _on_failure(self, error: BaseException):
        if isinstance(error, self.config.excluded_exceptions):
            return

        async with self._lock:
            self.stats.failure_count += 1
            self.stats.total_failures += 1
            self.stats.last_failure_time = self._clock()

            if self.stats.state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif (
                self.stats.state == CircuitState.CLOSED
                and self.stats.failure_count >= self.config.failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

            logger.warning(
                f"Circuit breaker [{self.service_name}] failure: {error}. "
                f"Failure count: {self.stats.failure_count}/{self.config.failure_threshold}"
            )

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Execute an async function with circuit breaker protection.

        Raises:
            CircuitBreakerOpen: If the circuit is open
            Exception: Any exception from the function
        """
        await self._before_call()

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            await self._on_failure(e)
            raise

        await self._on_success()
        return result

    def reset(self):
        """Manually reset the circuit breaker to closed state."""
        self.stats = CircuitBreakerStats(state_changed_at=self._clock())
        logger.info(f"Circuit breaker [{self.service_name}] manually reset")

    def get_status(self) -> dict:
        """Get current status as a dictionary."""
        return {
            "service": self.service_name,
            "state": self.stats.state.value,
            "failure_count": self.stats.failure_count,
            "total_calls": self.stats.total_calls,
            "total_failures": self.stats.total_failures,
            "retry_after": self._retry_after() if self.is_open else 0.0,
        }


# Provider submissions differ in how costly a failed attempt is:
# a short clip is cheap to re-submit, an avatar render is not.
_PROVIDER_BREAKER_CONFIGS = {
    "short-clip": CircuitBreakerConfig(failure_threshold=5, recovery_timeout=30.0),
    "long-form": CircuitBreakerConfig(failure_threshold=3, recovery_timeout=60.0),
    "avatar": CircuitBreakerConfig(failure_threshold=3, recovery_timeout=60.0),
}

_breakers: dict[str, CircuitBreaker] = {}


def get_provider_breaker(provider: str) -> CircuitBreaker:
    """
    Get the process-wide circuit breaker for a video provider.

    Args:
        provider: Provider name ('short-clip', 'long-form', 'avatar')
    """
    if provider not in _breakers:
        config = _PROVIDER_BREAKER_CONFIGS.get(provider, CircuitBreakerConfig())
        _breakers[provider] = CircuitBreaker(provider, config)
    return _breakers[provider]


def reset_provider_breakers():
    """Drop all registered breakers (used between jobs and in tests)."""
    _breakers.clear()
