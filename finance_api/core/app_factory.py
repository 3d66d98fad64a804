"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
owns the lifecycle of the process-wide cache and rate limiter registry:
both are constructed once at startup, stored on ``app.state`` and destroyed
at shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from finance_api.adapters.market.base import AbstractMarketDataClient
from finance_api.adapters.market.factory import create_market_client
from finance_api.adapters.rate_limit.registry import AdvancedRateLimiter, build_policies
from finance_api.api.routes import health_router, market_router
from finance_api.core.config import settings
from finance_api.core.exception_handlers import setup_exception_handlers
from finance_api.core.logging import configure_logging
from finance_api.core.middleware import request_id_middleware
from finance_api.core.openapi import apply_openapi_customizations
from finance_api.services.market_service import MarketDataService
from finance_api.utils.cache_service import CacheConfig, CacheService

logger = logging.getLogger(__name__)


def _build_lifespan(market_client: AbstractMarketDataClient | None):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        client = market_client or create_market_client(settings.market)
        cache = CacheService(CacheConfig.from_settings(settings.cache))
        rate_limiter = AdvancedRateLimiter(
            build_policies(settings.rate_limit),
            cleanup_interval_ms=settings.rate_limit.cleanup_interval_ms,
        )

        app.state.cache = cache
        app.state.rate_limiter = rate_limiter
        app.state.market_service = MarketDataService(
            client=client,
            cache=cache,
            quote_ttl_ms=settings.cache.quote_ttl_ms,
        )
        logger.info(
            "app.startup",
            extra={
                "cache_max_size": cache.config.max_size,
                "rate_limiters": rate_limiter.names,
            },
        )
        try:
            yield
        finally:
            try:
                await client.aclose()
            finally:
                rate_limiter.destroy()
                cache.destroy()
                logger.info("app.shutdown")

    return lifespan


def create_app(market_client: AbstractMarketDataClient | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        market_client: Optional upstream client; built from settings when omitted.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Finance API",
        description=(
            "Market data proxy for the personal finance dashboard. Quotes are "
            "served through an in-process TTL cache to shield rate-limited "
            "upstream providers, and every market route is protected by a "
            "fixed-window rate limiter (X-RateLimit-* headers, HTTP 429 with "
            "Retry-After when exhausted)."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=_build_lifespan(market_client),
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(market_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
