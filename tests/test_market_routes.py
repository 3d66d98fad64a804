"""Tests for the market data routes, rate limit dependency and diagnostics.

The ``client`` fixture runs the application lifespan, so the cache and the
rate limiter registry live on ``app.state`` exactly as in production; the
upstream provider is replaced by an in-memory fake.
"""

from datetime import datetime

import pytest

from finance_api.adapters.rate_limit.base import RateLimitConfig


def _ip(address: str) -> dict[str, str]:
    return {"X-Forwarded-For": address}


class TestQuoteRoute:
    def test_returns_quote_and_rate_limit_headers(self, client, market_client) -> None:
        resp = client.get("/v1/market/quote/aapl", headers=_ip("203.0.113.1"))

        assert resp.status_code == 200
        body = resp.json()
        assert body["symbol"] == "AAPL"
        assert body["quote"]["price"] == 190.5
        assert market_client.quote_calls == ["AAPL"]

        assert resp.headers["X-RateLimit-Limit"] == "100"
        assert resp.headers["X-RateLimit-Remaining"] == "99"
        # ISO-8601 timestamp
        datetime.fromisoformat(resp.headers["X-RateLimit-Reset"])

    def test_second_request_is_served_from_cache(self, client, market_client) -> None:
        client.get("/v1/market/quote/AAPL")
        resp = client.get("/v1/market/quote/AAPL")

        assert resp.status_code == 200
        assert market_client.quote_calls == ["AAPL"]

        stats = client.get("/health/cache").json()
        assert stats["size"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5

    def test_invalid_symbol_returns_400(self, client, market_client) -> None:
        resp = client.get("/v1/market/quote/bad$symbol")

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_symbol"
        assert market_client.quote_calls == []

    def test_provider_failure_returns_502_and_caches_nothing(self, client, market_client) -> None:
        market_client.fail = True

        resp = client.get("/v1/market/quote/AAPL")

        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "market_provider_error"
        assert client.get("/health/cache").json()["size"] == 0


class TestQuotesRoute:
    def test_batches_only_uncached_symbols(self, client, market_client) -> None:
        client.get("/v1/market/quote/AAPL")

        resp = client.get("/v1/market/quotes", params={"symbols": "aapl,MSFT,msft"})

        assert resp.status_code == 200
        body = resp.json()
        assert set(body["quotes"]) == {"AAPL", "MSFT"}
        assert body["missing"] == []
        assert market_client.batch_calls == [["MSFT"]]

    def test_unknown_symbols_are_reported_missing(self, client) -> None:
        resp = client.get("/v1/market/quotes", params={"symbols": "AAPL,ZZZZ"})

        body = resp.json()
        assert set(body["quotes"]) == {"AAPL"}
        assert body["missing"] == ["ZZZZ"]

    def test_provider_failure_degrades_to_stale_quotes(self, client, market_client) -> None:
        client.get("/v1/market/quote/AAPL")
        cache = client.app.state.cache
        # Expire the cached quote without purging it
        cache.extend_ttl("quote:AAPL", -10 * 60 * 1000)
        market_client.fail = True

        resp = client.get("/v1/market/quotes", params={"symbols": "AAPL,MSFT"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["quotes"]["AAPL"]["price"] == 190.5
        assert body["missing"] == ["MSFT"]

    def test_empty_symbol_list_returns_400(self, client) -> None:
        resp = client.get("/v1/market/quotes", params={"symbols": " , "})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "missing_symbols"


class TestRateLimiting:
    def test_denied_request_gets_429_with_retry_after(self, client) -> None:
        client.app.state.rate_limiter.add_custom_limiter(
            "market", RateLimitConfig(window_ms=60_000, max_requests=2)
        )

        assert client.get("/v1/market/quote/AAPL", headers=_ip("198.51.100.9")).status_code == 200
        second = client.get("/v1/market/quote/AAPL", headers=_ip("198.51.100.9"))
        assert second.headers["X-RateLimit-Remaining"] == "0"

        denied = client.get("/v1/market/quote/AAPL", headers=_ip("198.51.100.9"))

        assert denied.status_code == 429
        assert denied.headers["X-RateLimit-Limit"] == "2"
        assert denied.headers["X-RateLimit-Remaining"] == "0"
        assert 0 < int(denied.headers["Retry-After"]) <= 60
        detail = denied.json()["detail"]
        assert detail["error"] == "Rate limit exceeded"
        assert detail["retry_after"] > 0

    def test_other_clients_are_unaffected(self, client) -> None:
        client.app.state.rate_limiter.add_custom_limiter(
            "market", RateLimitConfig(window_ms=60_000, max_requests=1)
        )

        assert client.get("/v1/market/quote/AAPL", headers=_ip("10.0.0.1")).status_code == 200
        assert client.get("/v1/market/quote/AAPL", headers=_ip("10.0.0.1")).status_code == 429
        assert client.get("/v1/market/quote/AAPL", headers=_ip("10.0.0.2")).status_code == 200

    def test_reset_restores_access(self, client) -> None:
        registry = client.app.state.rate_limiter
        registry.add_custom_limiter("market", RateLimitConfig(window_ms=60_000, max_requests=1))
        client.get("/v1/market/quote/AAPL", headers=_ip("10.0.0.3"))
        assert client.get("/v1/market/quote/AAPL", headers=_ip("10.0.0.3")).status_code == 429

        registry.get_limiter("market").reset("10.0.0.3")

        assert client.get("/v1/market/quote/AAPL", headers=_ip("10.0.0.3")).status_code == 200

    def test_dependency_checks_limits_from_request_headers(self, client, monkeypatch) -> None:
        registry = client.app.state.rate_limiter
        seen: list[tuple[str | None, str]] = []
        original = registry.check_limits

        def recording_check_limits(request, endpoint):
            seen.append((request.headers.get("x-forwarded-for"), endpoint))
            return original(request, endpoint)

        monkeypatch.setattr(registry, "check_limits", recording_check_limits)

        client.get("/v1/market/quote/AAPL", headers=_ip("192.0.2.44, 10.0.0.1"))

        assert seen == [("192.0.2.44, 10.0.0.1", "market")]
        assert registry.get_limiter("market").get_status("192.0.2.44").count == 1

    def test_health_is_not_rate_limited(self, client) -> None:
        client.app.state.rate_limiter.add_custom_limiter(
            "market", RateLimitConfig(window_ms=60_000, max_requests=1)
        )
        for _ in range(3):
            resp = client.get("/health")
            assert resp.status_code == 200
            assert "X-RateLimit-Limit" not in resp.headers


class TestDiagnostics:
    def test_rate_limit_metrics(self, client) -> None:
        client.get("/v1/market/quote/AAPL", headers=_ip("10.1.1.1"))

        limiters = client.get("/health/rate-limits").json()["limiters"]

        assert set(limiters) == {"api", "chat", "market", "auth"}
        assert limiters["market"]["tracked_identifiers"] == 1
        assert limiters["auth"]["limit"] == 5

    def test_lifespan_releases_resources(self, market_client) -> None:
        from fastapi.testclient import TestClient

        from finance_api.core.app_factory import create_app

        app = create_app(market_client=market_client)
        with TestClient(app) as test_client:
            test_client.get("/v1/market/quote/AAPL")
            cache = app.state.cache

        assert market_client.closed is True
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_lifespan_destroys_cache_and_limiters_when_client_close_fails(self, market_client) -> None:
        from finance_api.core.app_factory import create_app

        async def broken_close() -> None:
            raise RuntimeError("connection pool already closed")

        market_client.aclose = broken_close
        app = create_app(market_client=market_client)

        with pytest.raises(RuntimeError):
            async with app.router.lifespan_context(app):
                cache = app.state.cache
                registry = app.state.rate_limiter
                cache.set("quote:AAPL", {"price": 1.0})

        assert len(cache) == 0
        assert cache._cleanup_thread is None
        assert all(registry.get_limiter(name)._cleanup_thread is None for name in registry.names)
