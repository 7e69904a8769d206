"""Bounded, fail-safe execution of store round trips.

Every cache and rate limit call to Redis goes through ``with_store_guard`` so
that a hung or broken store costs at most a fixed timeout and never raises
into the request path.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Upper bounds for a single store round trip, in seconds
SINGLE_KEY_TIMEOUT = 5.0
PATTERN_TIMEOUT = 10.0
PING_TIMEOUT = 3.0


async def with_store_guard(
    timeout: float,
    fallback: T,
    operation: Callable[[], Awaitable[T]],
    *,
    op_name: str = "store.operation",
) -> T:
    """Run a store operation with a deadline, returning ``fallback`` on failure.

    A timeout is treated exactly like a store error: it is logged and the
    fallback value is returned. Neither marks the store as permanently down;
    the next call tries again.

    Args:
        timeout: Maximum seconds to wait for the operation.
        fallback: Value returned when the operation times out or raises.
        operation: Zero-argument callable producing the awaitable to run.
        op_name: Event-style name used in log records.

    Returns:
        The operation result, or ``fallback``.
    """
    try:
        return await asyncio.wait_for(operation(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(
            "store.timeout",
            extra={"operation": op_name, "timeout_s": timeout},
        )
    except Exception as exc:
        logger.warning(
            "store.error",
            extra={
                "operation": op_name,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
    return fallback
