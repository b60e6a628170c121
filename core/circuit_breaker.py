"""
Circuit Breaker for Render API Calls

Stops the render proxy from hammering a vendor that keeps timing out or
refusing connections. Only transport failures count; an HTTP error response
is an answer and leaves the breaker alone.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Failing, requests are rejected immediately
- HALF_OPEN: Testing recovery, limited requests allowed

Breakers are plain objects owned by whoever builds them. There is no global
registry; two clients never share failure counts unless handed the same
breaker.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

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
    timeout: Optional[float] = None  # Per-call timeout in seconds
    excluded_exceptions: tuple = ()


@dataclass
class CircuitBreakerStats:
    """Runtime statistics for the circuit breaker."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    half_open_calls: int = 0
    state_changed_at: float = field(default_factory=time.monotonic)
    total_calls: int = 0
    total_failures: int = 0


class CircuitBreakerOpen(Exception):
    """Raised when the breaker is open and the call is rejected."""

    def __init__(self, service_name: str, retry_after: float):
        self.service_name = service_name
        self.retry_after = max(retry_after, 0.0)
        super().__init__(
            f"Circuit breaker is OPEN for {service_name}. "
            f"Retry after {self.retry_after:.1f} seconds."
        )


class CircuitBreaker:
    """
    Usage:
        breaker = CircuitBreaker("shotstack")
        response = await breaker.call(http.get, url)
    """

    def __init__(self, service_name: str, config: Optional[CircuitBreakerConfig] = None):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self.stats = CircuitBreakerStats()
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self.stats.state

    @property
    def is_open(self) -> bool:
        return self.stats.state == CircuitState.OPEN

    def _transition_to(self, new_state: CircuitState):
        old_state = self.stats.state
        self.stats.state = new_state
        self.stats.state_changed_at = time.monotonic()

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
                elapsed = time.monotonic() - self.stats.state_changed_at
                if elapsed < self.config.recovery_timeout:
                    raise CircuitBreakerOpen(
                        self.service_name, self.config.recovery_timeout - elapsed
                    )
                self._transition_to(CircuitState.HALF_OPEN)

            if self.stats.state == CircuitState.HALF_OPEN:
                if self.stats.half_open_calls >= self.config.half_open_max_calls:
                    raise CircuitBreakerOpen(self.service_name, self.config.recovery_timeout)
                self.stats.half_open_calls += 1

    async def _on_success(self):
        async with self._lock:
            self.stats.failure_count = 0
            self.stats.success_count += 1

            if (
                self.stats.state == CircuitState.HALF_OPEN
                and self.stats.success_count >= self.config.success_threshold
            ):
                self._transition_to(CircuitState.CLOSED)

    def _on_cancel(self):
        # A cancelled trial call proves nothing; free its half-open slot
        if self.stats.state == CircuitState.HALF_OPEN and self.stats.half_open_calls > 0:
            self.stats.half_open_calls -= 1

    async def _on_failure(self, error: BaseException):
        if isinstance(error, self.config.excluded_exceptions):
            return

        async with self._lock:
            self.stats.failure_count += 1
            self.stats.total_failures += 1

            if self.stats.state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif (
                self.stats.state == CircuitState.CLOSED
                and self.stats.failure_count >= self.config.failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

        logger.warning(
            f"Circuit breaker [{self.service_name}] failure: {error!r}. "
            f"Failure count: {self.stats.failure_count}/{self.config.failure_threshold}"
        )

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Execute ``func`` with breaker protection.

        Raises:
            CircuitBreakerOpen: If the circuit is open
            asyncio.TimeoutError: If the call exceeds ``config.timeout``
            Exception: Any exception from the function
        """
        await self._before_call()

        try:
            if self.config.timeout:
                result = await asyncio.wait_for(func(*args, **kwargs), timeout=self.config.timeout)
            else:
                result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            self._on_cancel()
            raise
        except Exception as e:
            await self._on_failure(e)
            raise

        await self._on_success()
        return result

    def reset(self):
        """Manually reset the circuit breaker to closed state."""
        self.stats = CircuitBreakerStats()
        logger.info(f"Circuit breaker [{self.service_name}] manually reset")

    def get_status(self) -> dict:
        return {
            "service": self.service_name,
            "state": self.stats.state.value,
            "failure_count": self.stats.failure_count,
            "total_calls": self.stats.total_calls,
            "total_failures": self.stats.total_failures,
        }


# Render APIs answer quickly; the render itself runs server-side
_RENDER_BREAKER_CONFIGS = {
    "shotstack": CircuitBreakerConfig(failure_threshold=5, recovery_timeout=30.0),
    "creatomate": CircuitBreakerConfig(failure_threshold=5, recovery_timeout=30.0),
    "proxy": CircuitBreakerConfig(failure_threshold=3, recovery_timeout=10.0),
}


def get_render_api_breaker(provider: str) -> CircuitBreaker:
    """Build a new breaker tuned for the given render provider."""
    config = _RENDER_BREAKER_CONFIGS.get(provider, CircuitBreakerConfig())
    return CircuitBreaker(provider, CircuitBreakerConfig(**vars(config)))
