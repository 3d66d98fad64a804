"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets test-safe environment variables before any settings import.
"""

import os
from typing import Any, Iterator

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("MARKET_API_KEY", "test-market-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")

import pytest
from fastapi.testclient import TestClient

from finance_api.adapters.market.base import AbstractMarketDataClient
from finance_api.core.app_factory import create_app
from finance_api.core.errors import MarketDataAppError
from finance_api.utils.cache_service import CacheConfig, CacheService


class FakeClock:
    """Deterministic clock (UNIX seconds) injected into cache and limiters."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance_ms(self, ms: float) -> None:
        self.current += ms / 1000


class FakeMarketClient(AbstractMarketDataClient):
    """In-memory market data provider recording every upstream call."""

    def __init__(self, prices: dict[str, float] | None = None) -> None:
        self.prices = prices if prices is not None else {"AAPL": 190.5, "MSFT": 410.0, "PETR4.SA": 37.2}
        self.quote_calls: list[str] = []
        self.batch_calls: list[list[str]] = []
        self.fail = False
        self.closed = False

    def _quote(self, symbol: str) -> dict[str, Any]:
        if self.fail:
            raise MarketDataAppError(code="market_provider_error", message="provider down")
        if symbol not in self.prices:
            raise MarketDataAppError(
                code="market_symbol_not_found",
                message=f"No quote available for symbol '{symbol}'",
                details={"symbol": symbol},
            )
        return {"symbol": symbol, "price": self.prices[symbol], "source": "fake"}

    async def get_quote(self, symbol: str) -> dict[str, Any]:
        self.quote_calls.append(symbol)
        return self._quote(symbol)

    async def get_quotes(self, symbols: list[str]) -> dict[str, dict[str, Any]]:
        self.batch_calls.append(list(symbols))
        return await super().get_quotes(symbols)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_cache(fake_clock: FakeClock) -> Iterator:
    """Factory for CacheService instances on the fake clock, destroyed after the test."""

    created: list[CacheService] = []

    def _make(**config: Any) -> CacheService:
        cache = CacheService(CacheConfig(**config), clock=fake_clock)
        created.append(cache)
        return cache

    yield _make

    for cache in created:
        cache.destroy()


@pytest.fixture
def market_client() -> FakeMarketClient:
    return FakeMarketClient()


@pytest.fixture
def client(market_client: FakeMarketClient) -> Iterator[TestClient]:
    """Test client with the lifespan running (cache + rate limiters on app.state)."""

    app = create_app(market_client=market_client)
    with TestClient(app) as test_client:
        yield test_client
