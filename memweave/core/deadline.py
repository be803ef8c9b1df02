"""
Deadline context for orchestrator calls.

A Deadline is an absolute expiry passed into every public orchestrator
method and propagated to each store call it makes. Cancellation of the
surrounding task propagates through the same awaits.

Usage:
    deadline = Deadline.after(5.0)
    result = await orchestrator.retrieve_memories(request, deadline=deadline)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Optional, TypeVar

from memweave.core.exceptions import DeadlineExceededError

T = TypeVar("T")


@dataclass(frozen=True)
class Deadline:
    """Absolute expiry on the monotonic clock."""

    expires_at: float
    timeout: float

    @classmethod
    def after(cls, seconds: float) -> Deadline:
        """Create a deadline `seconds` from now."""
        return cls(expires_at=time.monotonic() + seconds, timeout=seconds)

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0


async def run_with_deadline(
    awaitable: Awaitable[T],
    deadline: Optional[Deadline],
    operation: str,
) -> T:
    """
    Await `awaitable` within the remaining budget of `deadline`.

    Raises:
        DeadlineExceededError: If the deadline is already spent or runs out.
    """
    if deadline is None:
        return await awaitable

    if deadline.expired:
        # Close the un-awaited coroutine so it does not warn
        close = getattr(awaitable, "close", None)
        if close is not None:
            close()
        raise DeadlineExceededError(operation, deadline.timeout)

    try:
        return await asyncio.wait_for(awaitable, timeout=deadline.remaining())
    except asyncio.TimeoutError as e:
        raise DeadlineExceededError(operation, deadline.timeout) from e
