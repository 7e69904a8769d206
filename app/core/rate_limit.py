"""Per-client rate limiting for the HTTP layer.

This module wires the counter stores into request handling.

Design goals:
- Shared counters: Redis-backed so every instance enforces one budget.
- Fail-open: store trouble never rejects a request (see RedisRateLimitStore).
- Never fatal: building a limiter cannot fail; if the Redis store cannot be
  constructed the limiter falls back to per-process counters.

Rate limiting strategy:
- Fixed window per client address, as resolved through trusted proxies.
- Clients without a resolvable address share the ``"unknown"`` counter.
- Requests can be excluded from the count after the fact, depending on the
  response status (``skip_successful_requests`` / ``skip_failed_requests``).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from app.adapters.rate_limit.base import IncrementResult, RateLimitStore
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.adapters.rate_limit.redis_store import RedisRateLimitStore
from app.adapters.store.redis_client import RedisConnection, redis_connection
from app.core.config import settings
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"

CallNext = Callable[[Request], Awaitable[Response]]


@dataclass(frozen=True)
class RateLimitPolicy:
    """Budget and counting rules for one limiter.

    Attributes:
        name: Short label used in logs.
        window_seconds: Length of the counting window.
        max_requests: Hits allowed per window; the next one is rejected.
        message: Human-readable rejection message.
        skip_successful_requests: Do not count responses with status < 400.
        skip_failed_requests: Do not count responses with status >= 400
            (or handler exceptions).
    """

    name: str
    window_seconds: int = 60
    max_requests: int = 30
    message: str = "Too many requests from this IP, please try again later."
    skip_successful_requests: bool = False
    skip_failed_requests: bool = False

    @property
    def retry_after(self) -> int:
        return self.window_seconds


def general_policy() -> RateLimitPolicy:
    return RateLimitPolicy(
        name="general",
        window_seconds=settings.rate_limit.window_seconds,
        max_requests=settings.rate_limit.general_max,
        message="Too many requests from this IP, please try again later.",
    )


def strict_policy() -> RateLimitPolicy:
    return RateLimitPolicy(
        name="strict",
        window_seconds=settings.rate_limit.window_seconds,
        max_requests=settings.rate_limit.strict_max,
        message="Too many requests to this endpoint, please try again later.",
    )


def upload_policy() -> RateLimitPolicy:
    return RateLimitPolicy(
        name="upload",
        window_seconds=settings.rate_limit.window_seconds,
        max_requests=settings.rate_limit.upload_max,
        message="Too many upload attempts, please try again later.",
        skip_failed_requests=True,
    )


def resolve_client_address(request: Request, trusted_hops: int | None = None) -> str:
    """Return the originating client address for rate limiting.

    With ``trusted_hops`` proxies in front of the API, the address is taken
    from ``X-Forwarded-For`` that many hops back from the socket peer, so a
    client cannot spoof it by prepending entries.

    Args:
        request: Incoming request.
        trusted_hops: Number of trusted reverse proxies; defaults to settings.

    Returns:
        The client address, or ``"unknown"`` if none can be determined.
    """
    hops = settings.app.trust_proxy_hops if trusted_hops is None else trusted_hops
    peer = request.client.host if request.client else None
    if not peer:
        return UNKNOWN_CLIENT

    if hops <= 0:
        return peer

    forwarded = request.headers.get("x-forwarded-for", "")
    chain = [addr.strip() for addr in forwarded.split(",") if addr.strip()]
    # Nearest hop first: socket peer, then X-Forwarded-For right to left
    addresses = [peer, *reversed(chain)]
    return addresses[min(hops, len(addresses) - 1)] or UNKNOWN_CLIENT


class RateLimiter:
    """HTTP middleware enforcing one rate limit policy.

    Usage:
        app.middleware("http")(create_rate_limiter(general_policy()))

    When ``path`` and/or ``methods`` are given, only matching requests are
    counted; everything else passes straight through.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        store: RateLimitStore,
        *,
        path: str | None = None,
        methods: Iterable[str] | None = None,
    ) -> None:
        self.policy = policy
        self.store = store
        self._path = path.rstrip("/") if path else None
        self._methods = {m.upper() for m in methods} if methods else None

    def applies_to(self, request: Request) -> bool:
        if self._methods is not None and request.method.upper() not in self._methods:
            return False
        if self._path is not None and request.url.path.rstrip("/") != self._path:
            return False
        return True

    async def _count(self, key: str) -> IncrementResult:
        try:
            return await self.store.increment(key)
        except Exception as exc:
            logger.warning(
                "rate_limit.increment_failed",
                extra={
                    "policy": self.policy.name,
                    "error_type": type(exc).__name__,
                },
            )
            return IncrementResult(
                total_hits=1,
                reset_time=time.time() + self.policy.window_seconds,
            )

    async def _uncount(self, key: str) -> None:
        try:
            await self.store.decrement(key)
        except Exception as exc:
            logger.warning(
                "rate_limit.decrement_failed",
                extra={
                    "policy": self.policy.name,
                    "error_type": type(exc).__name__,
                },
            )

    def _is_skipped(self, status_code: int) -> bool:
        if status_code >= 400:
            return self.policy.skip_failed_requests
        return self.policy.skip_successful_requests

    def _limit_headers(self, result: IncrementResult) -> dict[str, str]:
        if not settings.app.rate_limit_include_headers:
            return {}
        remaining = max(0, self.policy.max_requests - result.total_hits)
        return {
            "X-RateLimit-Limit": str(self.policy.max_requests),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(int(result.reset_time)),
        }

    def _reject(self, result: IncrementResult) -> JSONResponse:
        headers = self._limit_headers(result)
        if headers:
            headers["Retry-After"] = str(self.policy.retry_after)
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "success": False,
                "error": "Too many requests",
                "message": self.policy.message,
                "retryAfter": self.policy.retry_after,
            },
            headers=headers or None,
        )

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        if not settings.app.rate_limit_enabled or not self.applies_to(request):
            return await call_next(request)

        key = resolve_client_address(request)
        result = await self._count(key)

        if result.total_hits > self.policy.max_requests:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "policy": self.policy.name,
                    "key_hash": hash_identifier(key),
                    "hits": result.total_hits,
                    "limit": self.policy.max_requests,
                    "method": request.method,
                    "path": request.url.path,
                    "retry_after_s": self.policy.retry_after,
                },
            )
            return self._reject(result)

        try:
            response = await call_next(request)
        except Exception:
            if self.policy.skip_failed_requests:
                await self._uncount(key)
            raise

        if self._is_skipped(response.status_code):
            await self._uncount(key)

        for name, value in self._limit_headers(result).items():
            response.headers.setdefault(name, value)
        return response


def create_rate_limiter(
    policy: RateLimitPolicy,
    *,
    connection: RedisConnection | None = None,
    path: str | None = None,
    methods: Iterable[str] | None = None,
) -> RateLimiter:
    """Build a limiter for ``policy``. Never raises.

    Uses shared Redis counters under an ``rl:<policy name>:`` namespace
    unless Redis is disabled in settings. If the Redis store cannot be
    constructed, per-process counters are used instead so the server keeps
    serving.
    """
    conn = connection or redis_connection
    store: RateLimitStore
    try:
        if not conn.enabled:
            store = InMemoryRateLimitStore(window_seconds=policy.window_seconds)
        else:
            store = RedisRateLimitStore(
                conn,
                window_seconds=policy.window_seconds,
                prefix=f"rl:{policy.name}:",
                op_timeout=settings.cache.op_timeout_seconds,
            )
    except Exception as exc:
        logger.error(
            "rate_limit.store_init_failed",
            extra={
                "policy": policy.name,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        store = InMemoryRateLimitStore(window_seconds=max(1, policy.window_seconds))

    logger.info(
        "rate_limit.initialized",
        extra={
            "policy": policy.name,
            "store": type(store).__name__,
            "limit": policy.max_requests,
            "window_s": policy.window_seconds,
        },
    )
    return RateLimiter(policy, store, path=path, methods=methods)
