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
    BackendAppError,
    BadRequestAppError,
    ForbiddenAppError,
    NotFoundAppError,
    PayloadTooLargeAppError,
    RateLimitAppError,
    StoreUnavailableError,
)
from app.core.exception_handlers import (
    build_error_response,
    general_exception_handler,
    setup_exception_handlers,
    status_code_for,
)


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


@pytest.mark.parametrize(
    ("error_type", "status_code"),
    [
        (BadRequestAppError, 400),
        (ForbiddenAppError, 403),
        (NotFoundAppError, 404),
        (PayloadTooLargeAppError, 413),
        (RateLimitAppError, 429),
        (BackendAppError, 500),
        (StoreUnavailableError, 503),
        (AppError, 400),
    ],
)
def test_status_code_mapping(error_type: type[AppError], status_code: int) -> None:
    assert status_code_for(error_type(code="c", message="m")) == status_code


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_client_error_includes_public_details(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/limited")
        async def endpoint():
            raise RateLimitAppError(
                code="rate_exceeded",
                message="Rate limit exceeded. Try again later.",
                details={"limit": 100, "retry_after": 30, "operation": "increment"},
            )

        response = client.get("/limited")

        assert response.status_code == 429
        error = response.json()["error"]
        assert error["code"] == "rate_exceeded"
        assert error["details"] == {"limit": 100, "retry_after": 30}
        assert "request_id" in error

    def test_server_error_hides_details(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/backend")
        async def endpoint():
            raise BackendAppError(
                code="storage_backend_error",
                message="Storage backend request failed",
                details={"backend": "minio", "key": "uploads/a.png"},
            )

        response = client.get("/backend")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["message"] == "Storage backend request failed"
        assert "details" not in error
        assert "minio" not in response.text

    def test_request_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/typed")
        async def endpoint(limit: int = Query(...)):
            return {"limit": limit}

        response = client.get("/typed?limit=abc")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "invalid_request"
        assert error["details"]["fields"] == ["limit"]

    def test_build_error_response_adds_headers(self):
        response = build_error_response(
            RateLimitAppError(code="burst_exceeded", message="slow down"),
            headers={"Retry-After": "7"},
        )

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "7"


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_returns_generic_500(self, client: TestClient, app_with_handlers: FastAPI):
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

        response = asyncio.run(general_exception_handler(request, ValueError("Test error with details")))

        data = json.loads(bytes(response.body).decode())
        assert data["error"]["code"] == "internal_server_error"
        assert "Traceback" not in response.body.decode()
        assert "ValueError" not in response.body.decode()


def test_multiple_handler_setups_does_not_fail():
    app = FastAPI()

    setup_exception_handlers(app)
    setup_exception_handlers(app)

    assert AppError in app.exception_handlers
    assert Exception in app.exception_handlers
