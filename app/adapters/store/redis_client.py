"""Redis connection handle shared by the cache and the rate limiter.

The handle is created once per process and connected explicitly during
application startup; importing this module opens no sockets. Consumers ask
for the current client on every operation instead of holding on to one.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis

from app.core.config import RedisSettings, settings

logger = logging.getLogger(__name__)


def _endpoint_for_logs(url: str) -> str:
    """Strip credentials from a Redis URL before it is logged."""
    return url.split("@")[-1]


class RedisConnection:
    """Lifecycle-managed handle around a ``redis.asyncio`` client.

    ``is_open`` reflects the handle state without a round trip. Transient
    socket failures after a successful connect are left to redis-py's own
    reconnect logic; callers see them as failed operations.
    """

    def __init__(self, redis_settings: RedisSettings | None = None) -> None:
        self._settings = redis_settings or settings.redis
        self._client: redis.Redis | None = None
        self._open = False

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def client(self) -> redis.Redis | None:
        return self._client

    @property
    def is_open(self) -> bool:
        return self._client is not None and self._open

    async def connect(self) -> redis.Redis | None:
        """Create the client and verify it with a ping.

        Safe to call repeatedly: an open handle is returned as is. Never
        raises; a failed attempt is logged and leaves the handle closed.

        Returns:
            The connected client, or None if Redis is disabled or unreachable.
        """
        if not self._settings.enabled:
            logger.info("redis.disabled")
            return None

        if self.is_open:
            return self._client

        endpoint = _endpoint_for_logs(self._settings.url)
        client: redis.Redis | None = None
        try:
            client = redis.from_url(
                self._settings.url,
                decode_responses=True,
                socket_timeout=self._settings.socket_timeout,
                socket_connect_timeout=self._settings.connect_timeout,
                max_connections=self._settings.max_connections,
                retry_on_timeout=True,
            )
            await client.ping()
        except Exception as exc:
            logger.error(
                "redis.connect_failed",
                extra={
                    "redis_endpoint": endpoint,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            if client is not None:
                await self._close_quietly(client)
            return None

        self._client = client
        self._open = True
        logger.info("redis.connected", extra={"redis_endpoint": endpoint})
        return client

    def attach(self, client: redis.Redis) -> None:
        """Adopt an already constructed client (embedding, tests)."""
        self._client = client
        self._open = True

    async def disconnect(self) -> None:
        """Close the client if one is open. Never raises."""
        client = self._client
        self._client = None
        self._open = False
        if client is None:
            return

        await self._close_quietly(client)
        logger.info("redis.disconnected")

    async def _close_quietly(self, client: redis.Redis) -> None:
        try:
            await client.aclose()
        except Exception as exc:
            logger.error(
                "redis.close_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )


# Process-wide handle, connected from the application lifespan
redis_connection = RedisConnection()
