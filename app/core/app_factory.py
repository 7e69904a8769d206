"""Application factory for the chapter catalogue API.

Builds the FastAPI app (metadata, lifespan, middleware, handlers, routers)
in one place so tests can create fresh, isolated instances.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.adapters.store.redis_client import RedisConnection, redis_connection
from app.api.routes import chapters_router, health_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import (
    create_rate_limiter,
    general_policy,
    strict_policy,
    upload_policy,
)
from app.services.cache_service import CacheService, cache_service

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def _build_lifespan(connection: RedisConnection, cache: CacheService):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Neither step raises: the API starts with or without Redis
        await connection.connect()
        await cache.initialize()
        logger.info(
            "app.started",
            extra={"cache_available": cache.is_available(), "redis_enabled": connection.enabled},
        )
        try:
            yield
        finally:
            await cache.shutdown()
            await connection.disconnect()
            logger.info("app.stopped")

    return lifespan


def create_app(
    *,
    connection: RedisConnection | None = None,
    cache: CacheService | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        connection: Shared store connection (defaults to the process-wide one).
        cache: Response cache (defaults to the process-wide one).

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    conn = connection or redis_connection
    cache = cache or cache_service

    app = FastAPI(
        title="Chapter Catalogue API",
        description=(
            "REST API for browsing and uploading syllabus chapters. Listings "
            "are served through a best-effort Redis response cache, and all "
            "traffic is protected by fail-open fixed-window rate limits. "
            "Write operations require an admin X-API-Key."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=_build_lifespan(conn, cache),
    )
    app.state.cache = cache

    # Middleware: the last one registered runs first, so request ids wrap
    # the limiters and their rejections carry a correlation id too.
    app.middleware("http")(
        create_rate_limiter(
            strict_policy(),
            connection=conn,
            path=f"{API_PREFIX}/chapters/cache",
            methods=["DELETE"],
        )
    )
    app.middleware("http")(
        create_rate_limiter(
            upload_policy(),
            connection=conn,
            path=f"{API_PREFIX}/chapters",
            methods=["POST"],
        )
    )
    app.middleware("http")(create_rate_limiter(general_policy(), connection=conn))
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(chapters_router, prefix=API_PREFIX)
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, public endpoints)
    apply_openapi_customizations(app)

    return app
