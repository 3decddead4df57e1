"""
Nested deadlines for benchmark phases.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")


class DeadlineExceeded(asyncio.TimeoutError):
    """Raised when an awaitable outlives its deadline."""


class Deadline:
    """An absolute point in time, optionally bounded by a parent deadline.

    A child never outlives its parent: its expiry is the earlier of the parent's
    expiry and ``now + timeout``.
    """

    def __init__(
        self,
        timeout: float,
        parent: Optional["Deadline"] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if timeout <= 0:
            raise ValueError(f"Deadline timeout must be positive, got {timeout}")
        self.clock = clock
        self.parent = parent
        expires_at = clock() + timeout
        if parent is not None:
            expires_at = min(expires_at, parent.expires_at)
        self.expires_at: float = expires_at

    def child(self, timeout: float) -> "Deadline":
        """Derive a deadline that expires after ``timeout`` or with this one."""
        return Deadline(timeout, parent=self, clock=self.clock)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self.clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    async def run(self, awaitable: Awaitable[T], limit: Optional[float] = None) -> T:
        """Await ``awaitable``, cancelling it when the deadline (or ``limit``) passes.

        Raises:
            DeadlineExceeded: if the deadline expires first
        """
        timeout = self.remaining()
        if limit is not None:
            timeout = min(timeout, limit)
        if timeout <= 0:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise DeadlineExceeded("deadline already expired")
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise DeadlineExceeded(f"deadline exceeded after {timeout:.3f}s") from e

    def __repr__(self) -> str:
        return f"Deadline(remaining={self.remaining():.3f}s)"
