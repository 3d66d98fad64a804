from __future__ import annotations

from dataclasses import asdict
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from finance_api.adapters.rate_limit.registry import AdvancedRateLimiter
from finance_api.core.dependencies import get_cache
from finance_api.core.rate_limit import get_rate_limiter
from finance_api.schemas.market import CacheStatsResponse
from finance_api.utils.cache_service import CacheService

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Health check endpoint.

    Returns a simple status response to verify the API is operational.
    Used by load balancers and monitoring systems to determine service health.
    """

    return {"status": "ok"}


@router.get("/health/cache", response_model=CacheStatsResponse)
def cache_stats(cache: Annotated[CacheService, Depends(get_cache)]) -> CacheStatsResponse:
    """Report response cache size, hit rate and approximate memory use."""

    return CacheStatsResponse(**asdict(cache.get_stats()))


@router.get("/health/rate-limits")
def rate_limit_metrics(
    limiter: Annotated[AdvancedRateLimiter, Depends(get_rate_limiter)],
) -> dict[str, Any]:
    """List the named rate limit policies and how many callers each is tracking."""

    return {"limiters": limiter.get_metrics()}
