"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI, Query
from fastapi.testclient import TestClient

from app.core.errors import (
    AppError,
    AuthenticationAppError,
    NotFoundAppError,
    ValidationAppError,
)
from app.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation")
        async def endpoint():
            raise ValidationAppError(code="empty_upload", message="Chapters data must be a non-empty array")

        response = client.get("/test-validation")

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["error"]["code"] == "empty_upload"
        assert data["error"]["message"] == "Chapters data must be a non-empty array"
        assert "request_id" in data["error"]
        assert "details" not in data["error"]

    def test_details_are_included_when_provided(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-details")
        async def endpoint():
            raise ValidationAppError(
                code="invalid_file_type",
                message="Only JSON files are allowed",
                details={"content_type": "text/csv"},
            )

        data = client.get("/test-details").json()

        assert data["error"]["details"] == {"content_type": "text/csv"}

    def test_authentication_error_returns_403(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-auth")
        async def endpoint():
            raise AuthenticationAppError(code="invalid_api_key", message="Not authorized to access this route")

        response = client.get("/test-auth")

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "invalid_api_key"

    def test_not_found_error_returns_404(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-missing")
        async def endpoint():
            raise NotFoundAppError(code="chapter_not_found", message="Chapter not found")

        response = client.get("/test-missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "chapter_not_found"


class TestHttpExceptionHandler:

    def test_unknown_route_message(self, client: TestClient):
        response = client.get("/api/v1/nope")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Route /api/v1/nope not found"}

    def test_method_not_allowed_keeps_detail(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/only-get")
        async def endpoint():
            return {"ok": True}

        response = client.post("/only-get")

        assert response.status_code == 405
        assert response.json()["success"] is False
        assert "Allow" in response.headers


class TestValidationExceptionHandler:

    def test_invalid_query_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/items")
        async def endpoint(limit: int = Query(10, ge=1, le=100)):
            return {"limit": limit}

        response = client.get("/items", params={"limit": 500})

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Invalid query parameters"
        assert len(data["details"]) == 1
        assert data["details"][0].startswith("limit:")


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/boom")
        async def endpoint():
            raise RuntimeError("database connection failed")

        response = client.get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"
        assert "database connection" not in response.text

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = ValueError("Test error with details")
        response = asyncio.run(general_exception_handler(request, exc))

        response_text = bytes(response.body).decode()
        data = json.loads(response_text)
        assert response.status_code == 500
        assert data["success"] is False
        assert "Traceback" not in response_text
        assert "ValueError" not in response_text


def test_setup_exception_handlers_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers
