"""Rate limiting adapters.

This package provides a small abstraction layer so the service can start
with in-memory fixed-window limiters and later migrate to Redis or another
shared store without changing the API layer.
"""

from finance_api.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitConfig,
    RateLimitResult,
    RateLimitWindow,
)
from finance_api.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from finance_api.adapters.rate_limit.registry import (
    AdvancedRateLimiter,
    build_policies,
    get_client_identifier,
)

__all__ = [
    "AbstractRateLimiter",
    "AdvancedRateLimiter",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimitWindow",
    "build_policies",
    "get_client_identifier",
]
