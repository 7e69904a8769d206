"""Best-effort response cache backed by Redis.

The cache fronts the chapter repository and is never a source of truth:
every operation degrades to "miss" (reads) or "not stored" (writes) when
Redis is unavailable or failing, so callers always have the
repository to fall back on.

Behaviour summary:
- Keys are ``endpoint`` or ``endpoint?k1=v1&k2=v2`` with sorted keys and
  ``None`` values dropped (see ``generate_cache_key``).
- Values are JSON documents written with a TTL (default one hour).
- Single-key operations are bounded by 5s, pattern scans and flushes by 10s,
  health pings by 3s.
- The current client is re-resolved from the connection handle on every call.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping
from urllib.parse import quote

import redis.asyncio as redis

from app.adapters.store.guard import with_store_guard
from app.adapters.store.redis_client import RedisConnection, redis_connection
from app.core.config import CacheSettings, settings

logger = logging.getLogger(__name__)

# Sub-delimiters kept literal in query values
_URI_COMPONENT_SAFE = "!*'()"

CHAPTER_CACHE_PATTERN = "/api/v1/chapters*"


def _encode_query_value(value: Any) -> str:
    if isinstance(value, bool):
        value = "true" if value else "false"
    return quote(str(value), safe=_URI_COMPONENT_SAFE)


class CacheService:
    """Redis-backed response cache with fail-open semantics.

    Attributes:
        default_ttl: TTL applied by ``set`` when none is given.
    """

    def __init__(
        self,
        connection: RedisConnection,
        cache_settings: CacheSettings | None = None,
    ) -> None:
        cfg = cache_settings or settings.cache
        self._connection = connection
        self.default_ttl = cfg.default_ttl_seconds
        self._retry_delay = cfg.init_retry_seconds
        self._op_timeout = cfg.op_timeout_seconds
        self._pattern_timeout = cfg.pattern_timeout_seconds
        self._ping_timeout = cfg.ping_timeout_seconds
        self._initialized = False
        self._retry_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Resolve the store handle and mark the cache ready.

        If Redis is not reachable yet, a background retry runs every
        ``init_retry_seconds`` until it is; meanwhile the cache reports
        itself unavailable. Calling this again once ready is a no-op.
        Never raises.
        """
        if self._initialized:
            return

        if await self._attempt_init():
            return

        if not self._connection.enabled:
            return

        logger.warning(
            "cache.init_failed",
            extra={"retry_in_s": self._retry_delay},
        )
        if self._retry_task is None or self._retry_task.done():
            self._retry_task = asyncio.create_task(self._retry_until_ready())

    async def _attempt_init(self) -> bool:
        client = self._connection.client if self._connection.is_open else None
        if client is None:
            client = await self._connection.connect()
        if client is None:
            return False

        self._initialized = True
        logger.info("cache.initialized")
        return True

    async def _retry_until_ready(self) -> None:
        while not self._initialized:
            await asyncio.sleep(self._retry_delay)
            logger.info("cache.init_retry")
            await self._attempt_init()

    async def shutdown(self) -> None:
        """Cancel any pending initialization retry and reset readiness."""
        task = self._retry_task
        self._retry_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._initialized = False

    def is_available(self) -> bool:
        """Report readiness without touching the network."""
        return self._initialized and self._connection.is_open

    def _current_client(self) -> redis.Redis | None:
        if not self._connection.is_open:
            return None
        return self._connection.client

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    @staticmethod
    def generate_cache_key(endpoint: str, query: Mapping[str, Any] | None = None) -> str:
        """Build a deterministic cache key from an endpoint and its query.

        Parameter order never affects the key, and parameters whose value is
        ``None`` are left out. Any fault while building the query string
        yields the bare endpoint.

        Args:
            endpoint: Request path, e.g. ``/api/v1/chapters``.
            query: Query parameters (validated values).

        Returns:
            ``endpoint`` or ``endpoint?a=1&b=2``.

        Example:
            >>> CacheService.generate_cache_key("/x", {"b": 2, "a": 1})
            '/x?a=1&b=2'
        """
        try:
            if not query:
                return endpoint

            query_string = "&".join(
                f"{name}={_encode_query_value(query[name])}"
                for name in sorted(query)
                if query[name] is not None
            )
            return f"{endpoint}?{query_string}" if query_string else endpoint
        except Exception as exc:
            logger.error(
                "cache.key_generation_failed",
                extra={
                    "endpoint": endpoint,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return endpoint

    # ------------------------------------------------------------------
    # Single-key operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Return the cached value for ``key`` or None.

        A true miss, an unavailable store, a timeout and an undecodable
        entry all look the same to the caller.
        """
        if not self.is_available():
            logger.debug("cache.skipped", extra={"operation": "get", "reason": "unavailable"})
            return None

        client = self._current_client()
        if client is None:
            return None

        raw = await with_store_guard(
            self._op_timeout,
            None,
            lambda: client.get(key),
            op_name="cache.get",
        )
        if raw is None:
            logger.info("cache.miss", extra={"cache_key": key})
            return None

        try:
            value = json.loads(raw)
        except ValueError as exc:
            logger.error(
                "cache.decode_failed",
                extra={"cache_key": key, "error_msg": str(exc)},
            )
            return None

        logger.info("cache.hit", extra={"cache_key": key})
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store a JSON-serializable value with a TTL.

        Returns:
            True only when Redis confirmed the write.
        """
        if not self.is_available():
            return False

        client = self._current_client()
        if client is None:
            return False

        expiry = self.default_ttl if ttl is None else ttl
        if expiry < 1:
            logger.warning("cache.invalid_ttl", extra={"cache_key": key, "ttl_s": expiry})
            return False

        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.error(
                "cache.encode_failed",
                extra={"cache_key": key, "error_type": type(exc).__name__},
            )
            return False

        stored = await with_store_guard(
            self._op_timeout,
            False,
            lambda: client.set(key, payload, ex=expiry),
            op_name="cache.set",
        )
        if stored:
            logger.info("cache.set", extra={"cache_key": key, "ttl_s": expiry})
        return bool(stored)

    async def delete(self, key: str) -> bool:
        """Remove one key. True only if something was actually removed."""
        if not self.is_available():
            return False

        client = self._current_client()
        if client is None:
            return False

        removed = await with_store_guard(
            self._op_timeout,
            0,
            lambda: client.delete(key),
            op_name="cache.delete",
        )
        logger.info("cache.delete", extra={"cache_key": key, "deleted": removed > 0})
        return removed > 0

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def invalidate_pattern(self, pattern: str) -> bool:
        """Delete every key matching a glob pattern.

        The scan and the batch delete share one 10s deadline.

        Returns:
            True if the scan and delete completed, including when nothing
            matched; False on error, timeout or unavailability.
        """
        if not self.is_available():
            return False

        client = self._current_client()
        if client is None:
            return False

        async def _scan_and_delete() -> int:
            keys = [key async for key in client.scan_iter(match=pattern)]
            if keys:
                await client.delete(*keys)
            return len(keys)

        deleted = await with_store_guard(
            self._pattern_timeout,
            None,
            _scan_and_delete,
            op_name="cache.invalidate_pattern",
        )
        if deleted is None:
            return False

        logger.info(
            "cache.invalidated",
            extra={"pattern": pattern, "deleted_keys": deleted},
        )
        return True

    async def invalidate_chapter_cache(self) -> bool:
        """Drop every cached chapter listing."""
        return await self.invalidate_pattern(CHAPTER_CACHE_PATTERN)

    async def clear_all(self) -> bool:
        """Flush the whole Redis database used by the cache."""
        if not self.is_available():
            return False

        client = self._current_client()
        if client is None:
            return False

        flushed = await with_store_guard(
            self._pattern_timeout,
            False,
            client.flushdb,
            op_name="cache.clear_all",
        )
        if flushed:
            logger.info("cache.cleared")
        return bool(flushed)

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def health_check(self) -> dict[str, Any]:
        """Describe cache health for the monitoring endpoint. Never raises.

        Returns:
            One of the ``not_initialized``, ``unavailable``, ``healthy`` or
            ``error`` status records.
        """
        if not self._initialized:
            return {"status": "not_initialized", "connected": False}

        client = self._current_client()
        if client is None:
            return {"status": "unavailable", "connected": False}

        try:
            pong = await asyncio.wait_for(client.ping(), timeout=self._ping_timeout)
        except asyncio.TimeoutError:
            return {"status": "error", "connected": False, "message": "Ping timeout"}
        except Exception as exc:
            return {"status": "error", "connected": False, "message": str(exc)}

        return {
            "status": "healthy",
            "connected": True,
            "response": "PONG" if pong is True else pong,
            "connection_open": self._connection.is_open,
        }


# Process-wide cache, initialized from the application lifespan
cache_service = CacheService(redis_connection)
