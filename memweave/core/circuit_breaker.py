"""
Circuit Breaker for the networked vector and graph stores.

An open circuit turns a slow backend timeout into an immediate
CircuitBreakerOpenError, which the orchestrator logs as a soft failure
for the vector and graph stores.

States:
- CLOSED: calls pass through; consecutive failures are counted
- OPEN: calls are rejected until `recovery_timeout` elapses
- HALF_OPEN: trial calls pass; `success_threshold` successes close the
  circuit and any failure reopens it

Usage:
    breaker = get_circuit_breaker("neo4j", failure_threshold=5, recovery_timeout=60)

    async with breaker.guard():
        records = await session.run(query)
"""

import asyncio
import time
from contextlib import asynccontextmanager
from enum import Enum
from functools import wraps
from typing import Any, AsyncIterator, Callable, Optional

import structlog

from memweave.core.exceptions import CircuitBreakerOpenError
from memweave.monitoring.metrics import (
    record_circuit_breaker_failure,
    update_circuit_breaker_state,
)

logger = structlog.get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Failure counter and gate for a single backend.

    Args:
        name: Backend name, also the metrics label (e.g. "pinecone")
        failure_threshold: Consecutive failures that open the circuit
        recovery_timeout: Seconds an open circuit waits before trial calls
        success_threshold: Trial successes needed to close the circuit
        clock: Time source in seconds
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        success_threshold: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: Optional[float] = None
        self._lock = asyncio.Lock()

    def _transition(self, state: CircuitState, event: str, **context: Any) -> None:
        self._state = state
        if state is CircuitState.OPEN:
            self._opened_at = self._clock()
        if state is not CircuitState.CLOSED:
            self._success_count = 0
        update_circuit_breaker_state(self.name, state.value)
        logger.info(event, name=self.name, **context)

    @property
    def state(self) -> CircuitState:
        """Current state; an expired OPEN circuit reports HALF_OPEN."""
        if self._state is CircuitState.OPEN and self.time_until_recovery() <= 0:
            self._transition(CircuitState.HALF_OPEN, "circuit_breaker_half_open")
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state is CircuitState.OPEN

    def can_execute(self) -> bool:
        return self.state is not CircuitState.OPEN

    def time_until_recovery(self) -> float:
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self._opened_at + self.recovery_timeout - self._clock())

    def ensure_can_execute(self) -> None:
        """Raise CircuitBreakerOpenError while the circuit is open."""
        if self.can_execute():
            return
        recovery_time = self.time_until_recovery()
        logger.warning("circuit_breaker_blocked", name=self.name, recovery_time=recovery_time)
        raise CircuitBreakerOpenError(self.name, recovery_time)

    async def record_success(self) -> None:
        async with self._lock:
            if self._state is CircuitState.CLOSED:
                self._failure_count = 0
                return
            if self._state is CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    self._failure_count = 0
                    self._transition(CircuitState.CLOSED, "circuit_breaker_closed")

    async def record_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            record_circuit_breaker_failure(self.name)

            if self._state is CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN, "circuit_breaker_reopened")
            elif (
                self._state is CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._transition(
                    CircuitState.OPEN,
                    "circuit_breaker_opened",
                    failure_count=self._failure_count,
                    recovery_timeout=self.recovery_timeout,
                )

    @asynccontextmanager
    async def guard(self) -> AsyncIterator[None]:
        """Reject when open, then record the outcome of the wrapped block."""
        self.ensure_can_execute()
        try:
            yield
        except Exception:
            await self.record_failure()
            raise
        await self.record_success()

    def reset(self) -> None:
        self._failure_count = 0
        self._opened_at = None
        self._transition(CircuitState.CLOSED, "circuit_breaker_reset")

    def __call__(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Use as decorator for async functions."""

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            async with self.guard():
                return await func(*args, **kwargs)

        return wrapper


# =============================================================================
# Registry
# =============================================================================

_circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    name: str,
    failure_threshold: int = 5,
    recovery_timeout: float = 60.0,
) -> CircuitBreaker:
    """Return the breaker registered under `name`, creating it on first use."""
    breaker = _circuit_breakers.get(name)
    if breaker is None:
        breaker = CircuitBreaker(
            name=name,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )
        _circuit_breakers[name] = breaker
    return breaker


def reset_all_circuit_breakers() -> None:
    for breaker in _circuit_breakers.values():
        breaker.reset()
