"""Rate limiting dependency for FastAPI routes.

This module wires the named limiter registry into the HTTP layer.

Design goals:
- Minimal coupling: routes declare ``Depends(rate_limit("market"))`` only.
- Injected state: the registry lives on ``app.state`` and is created and
  destroyed by the application lifespan.
- Protocol contract: allowed responses carry X-RateLimit-* headers, denied
  requests get HTTP 429 plus Retry-After.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Awaitable, Callable

from fastapi import HTTPException, Request, Response, status

from finance_api.adapters.rate_limit.base import RateLimitResult
from finance_api.adapters.rate_limit.registry import AdvancedRateLimiter, get_client_identifier
from finance_api.core.config import settings
from finance_api.core.logging import hash_identifier

logger = logging.getLogger(__name__)


def get_rate_limiter(request: Request) -> AdvancedRateLimiter:
    """Return the registry created by the application lifespan."""

    return request.app.state.rate_limiter


def _format_reset(reset_at_ms: int) -> str:
    return datetime.fromtimestamp(reset_at_ms / 1000, tz=timezone.utc).isoformat()


def retry_after_seconds(result: RateLimitResult) -> int:
    """Whole seconds a denied caller should wait, rounded up."""

    return max(0, math.ceil((result.retry_after or 0) / 1000))


def build_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Build the response headers describing a rate limit decision."""

    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": _format_reset(result.reset_at),
    }
    if result.retry_after:
        headers["Retry-After"] = str(retry_after_seconds(result))
    return headers


def rate_limit(endpoint: str) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a FastAPI dependency enforcing the named limiter.

    Args:
        endpoint: Registry name of the policy ("api", "chat", "market", "auth").

    Returns:
        Dependency that consumes one unit per request and raises HTTP 429 when
        the caller's window is exhausted.
    """

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        if not settings.rate_limit.enabled:
            return

        limiter = get_rate_limiter(request)
        result = limiter.check_limits(request, endpoint)
        identifier = get_client_identifier(request.headers)
        headers = build_rate_limit_headers(result) if settings.rate_limit.include_headers else {}

        log_extra = {
            "limiter": endpoint,
            "key_hash": hash_identifier(identifier),
            "limit": result.limit,
            "remaining": result.remaining,
        }

        if result.success:
            logger.info("rate_limit.allowed", extra=log_extra)
            response.headers.update(headers)
            return

        retry_after = retry_after_seconds(result)
        logger.warning(
            "rate_limit.exceeded",
            extra={**log_extra, "retry_after_ms": result.retry_after},
        )

        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "Rate limit exceeded",
                "message": f"Too many requests. Try again in {retry_after} seconds.",
                "retry_after": result.retry_after,
            },
            headers={**headers, "Retry-After": str(retry_after)},
        )

    return enforce_rate_limit
