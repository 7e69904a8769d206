"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Used when Redis is disabled or the shared store cannot be constructed.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import IncrementResult, RateLimitStore


@dataclass
class _WindowState:
    window_start: int
    count: int


class InMemoryRateLimitStore(RateLimitStore):
    """Counter store using fixed windows aligned on the epoch.

    Because all keys share the same window boundaries, counters from a
    finished window are dropped wholesale when the next window starts.
    """

    def __init__(
        self,
        *,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            window_seconds: Size of the fixed window in seconds.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If window_seconds is invalid.
        """
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._current_window: int | None = None
        self._state_by_key: dict[str, _WindowState] = {}

    def _get_window_bounds(self, now: float) -> tuple[int, int]:
        """Compute fixed-window boundaries for a given timestamp.

        Returns:
            Tuple of (window_start_epoch_seconds, reset_at_epoch_seconds).
        """
        window_start = int(now // self._window_seconds) * self._window_seconds
        return window_start, window_start + self._window_seconds

    def _roll_window_locked(self, window_start: int) -> None:
        if self._current_window != window_start:
            self._state_by_key.clear()
            self._current_window = window_start

    async def increment(self, key: str) -> IncrementResult:
        window_start, reset_at = self._get_window_bounds(self._clock())

        with self._lock:
            self._roll_window_locked(window_start)
            state = self._state_by_key.setdefault(
                key, _WindowState(window_start=window_start, count=0)
            )
            state.count += 1
            return IncrementResult(total_hits=state.count, reset_time=float(reset_at))

    async def decrement(self, key: str) -> None:
        window_start, _ = self._get_window_bounds(self._clock())

        with self._lock:
            self._roll_window_locked(window_start)
            state = self._state_by_key.get(key)
            if state is not None and state.count > 0:
                state.count -= 1

    async def reset_key(self, key: str) -> None:
        with self._lock:
            self._state_by_key.pop(key, None)
