"""Tests for global exception handlers.

Validates that domain errors map to consistent HTTP status codes and error
format, and that unexpected errors never leak internals.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from finance_api.core.errors import AppError, MarketDataAppError, ValidationAppError
from finance_api.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/validation")
    async def validation_endpoint():
        raise ValidationAppError(
            code="invalid_symbol",
            message="Symbol must be 1-15 characters",
            details={"symbol": "bad$"},
        )

    @app.get("/upstream")
    async def upstream_endpoint():
        raise MarketDataAppError(
            code="market_provider_throttled",
            message="Alpha Vantage rejected the request (rate limited)",
        )

    return app


@pytest.fixture
def handler_client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    def test_validation_error_returns_400_with_details(self, handler_client: TestClient) -> None:
        response = handler_client.get("/validation")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "invalid_symbol"
        assert error["details"] == {"symbol": "bad$"}
        assert "request_id" in error

    def test_market_data_error_returns_502(self, handler_client: TestClient) -> None:
        response = handler_client.get("/upstream")

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "market_provider_throttled"
        assert "details" not in error

    def test_app_error_str_is_message(self) -> None:
        exc = MarketDataAppError(code="x", message="provider down")
        assert str(exc) == "provider down"


class TestGeneralExceptionHandler:
    def test_generic_500_never_leaks_exception_text(self) -> None:
        request = AsyncMock()
        request.url.path = "/v1/market/quote/AAPL"
        request.method = "GET"

        exc = RuntimeError("connection pool exhausted at 10.0.0.5")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "10.0.0.5" not in data["error"]["message"]
        assert "RuntimeError" not in bytes(response.body).decode()


def test_setup_registers_handlers(app_with_handlers: FastAPI) -> None:
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers
