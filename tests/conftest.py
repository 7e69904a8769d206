"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before any application import so settings are
built for an isolated run: no Redis connection, rate limiting off unless a
test turns it on, and a known admin key.
"""

from __future__ import annotations

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("APP_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-admin-key,test-admin-key-2")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import fakeredis  # noqa: E402
import fakeredis.aioredis  # noqa: E402
import pytest  # noqa: E402

from app.adapters.store.redis_client import RedisConnection  # noqa: E402
from app.core.config import CacheSettings, RedisSettings  # noqa: E402
from app.services.cache_service import CacheService  # noqa: E402


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(redis_server):
    return fakeredis.aioredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def connection(fake_redis) -> RedisConnection:
    conn = RedisConnection(RedisSettings(enabled=True, url="redis://fake:6379/0"))
    conn.attach(fake_redis)
    return conn


@pytest.fixture
def cache_settings() -> CacheSettings:
    return CacheSettings(
        default_ttl_seconds=3600,
        init_retry_seconds=0.01,
        op_timeout_seconds=0.2,
        pattern_timeout_seconds=0.2,
        ping_timeout_seconds=0.2,
    )


@pytest.fixture
def cache(connection, cache_settings) -> CacheService:
    return CacheService(connection, cache_settings)
