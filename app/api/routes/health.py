from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Health check endpoint.

    Reports that the API is serving and how the response cache is doing.
    The cache status never makes this endpoint fail: a broken cache only
    degrades performance.

    Returns:
        dict: ``success``, a message and the cache health record.
    """

    return {
        "success": True,
        "message": "Server is running",
        "cache": await request.app.state.cache.health_check(),
    }
