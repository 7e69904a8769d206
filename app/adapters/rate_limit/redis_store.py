"""Redis-backed counter store shared by all server instances.

Counter lifecycle per key: absent → 1 (INCR, then EXPIRE window) → N (INCR,
TTL untouched) → expired → absent. DECR corrections are clamped at zero.

Failure policy is fail-open: when Redis is unavailable, slow or erroring,
``increment`` reports a single hit in a fresh window so no request is ever
rejected because of infrastructure trouble. An outage therefore disables
rate limiting for its duration; that trade-off is intentional.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import redis.asyncio as redis

from app.adapters.rate_limit.base import IncrementResult, RateLimitStore
from app.adapters.store.guard import SINGLE_KEY_TIMEOUT, with_store_guard
from app.adapters.store.redis_client import RedisConnection

logger = logging.getLogger(__name__)


class RedisRateLimitStore(RateLimitStore):
    """Fixed-window counters in Redis with fail-open fallbacks.

    Construction never touches the network, so a limiter can always be
    built even when Redis is down at startup.
    """

    def __init__(
        self,
        connection: RedisConnection,
        *,
        window_seconds: int,
        prefix: str = "rl:",
        op_timeout: float = SINGLE_KEY_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self._connection = connection
        self._window_seconds = window_seconds
        self._prefix = prefix
        self._op_timeout = op_timeout
        self._clock = clock

    def _client(self) -> redis.Redis | None:
        if not self._connection.is_open:
            return None
        return self._connection.client

    def _redis_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _fresh_window(self) -> IncrementResult:
        return IncrementResult(
            total_hits=1,
            reset_time=self._clock() + self._window_seconds,
        )

    async def increment(self, key: str) -> IncrementResult:
        client = self._client()
        if client is None:
            logger.warning("rate_limit.store_unavailable", extra={"operation": "increment"})
            return self._fresh_window()

        redis_key = self._redis_key(key)

        async def _incr() -> IncrementResult:
            current = await client.incr(redis_key)
            if current == 1:
                await client.expire(redis_key, self._window_seconds)
            # Approximation: not read back from the key's actual TTL
            return IncrementResult(
                total_hits=current,
                reset_time=self._clock() + self._window_seconds,
            )

        return await with_store_guard(
            self._op_timeout,
            self._fresh_window(),
            _incr,
            op_name="rate_limit.increment",
        )

    async def decrement(self, key: str) -> None:
        client = self._client()
        if client is None:
            return

        redis_key = self._redis_key(key)

        async def _decr() -> None:
            current = await client.decr(redis_key)
            if current < 0:
                await client.set(redis_key, 0)

        await with_store_guard(
            self._op_timeout,
            None,
            _decr,
            op_name="rate_limit.decrement",
        )

    async def reset_key(self, key: str) -> None:
        client = self._client()
        if client is None:
            return

        await with_store_guard(
            self._op_timeout,
            None,
            lambda: client.delete(self._redis_key(key)),
            op_name="rate_limit.reset_key",
        )
