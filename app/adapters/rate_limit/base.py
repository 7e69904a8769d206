"""Rate limit store interface.

The limiter depends on this abstraction (not a concrete backend) so the
shared Redis store and the per-process fallback are interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class IncrementResult:
    """Outcome of counting one request.

    Attributes:
        total_hits: Hits recorded for the key in the current window,
            including this one.
        reset_time: UNIX epoch seconds when the window is expected to reset.
    """

    total_hits: int
    reset_time: float


class RateLimitStore(ABC):
    """Interface for per-key hit counters over a fixed window."""

    @abstractmethod
    async def increment(self, key: str) -> IncrementResult:
        """Count one hit for ``key`` and report the running total."""
        raise NotImplementedError

    @abstractmethod
    async def decrement(self, key: str) -> None:
        """Give back one hit for ``key``; counters never drop below zero."""
        raise NotImplementedError

    @abstractmethod
    async def reset_key(self, key: str) -> None:
        """Forget every hit recorded for ``key``."""
        raise NotImplementedError
