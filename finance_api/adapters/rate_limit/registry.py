"""Named registry of independently configured rate limiters.

Each logical endpoint class ("api", "chat", "market", "auth") owns its own
policy and its own identifier-to-window mapping. Unknown endpoint names fall
back to the general-purpose "api" limiter.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping, Protocol

from finance_api.adapters.rate_limit.base import RateLimitConfig, RateLimitResult
from finance_api.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from finance_api.core.config import RateLimitSettings

logger = logging.getLogger(__name__)

DEFAULT_LIMITER = "api"
UNKNOWN_CLIENT = "unknown"


class SupportsHeaders(Protocol):
    headers: Mapping[str, str]


def build_policies(rate_limit_settings: RateLimitSettings) -> dict[str, RateLimitConfig]:
    """Translate settings into the pre-configured named policies."""

    s = rate_limit_settings
    return {
        "api": RateLimitConfig(window_ms=s.api_window_ms, max_requests=s.api_max),
        "chat": RateLimitConfig(window_ms=s.chat_window_ms, max_requests=s.chat_max),
        "market": RateLimitConfig(window_ms=s.market_window_ms, max_requests=s.market_max),
        "auth": RateLimitConfig(window_ms=s.auth_window_ms, max_requests=s.auth_max),
    }


def get_client_identifier(headers: Mapping[str, str]) -> str:
    """Derive the caller identity from proxy headers.

    Uses the first X-Forwarded-For entry, then X-Real-IP. Callers with
    neither share the single "unknown" bucket.
    """

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return UNKNOWN_CLIENT


class AdvancedRateLimiter:
    """Dispatches rate limit checks to per-endpoint limiters."""

    def __init__(
        self,
        policies: Mapping[str, RateLimitConfig] | None = None,
        *,
        cleanup_interval_ms: int = 60_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Create one limiter per policy.

        Args:
            policies: Named policies; the built-in defaults are used when omitted.
                An "api" policy is added if missing since it backs unknown names.
            cleanup_interval_ms: Sweep interval passed to every limiter.
            clock: Time source shared by all limiters.
        """
        if policies is None:
            policies = build_policies(RateLimitSettings())

        self._cleanup_interval_ms = cleanup_interval_ms
        self._clock = clock
        self._limiters: dict[str, InMemoryFixedWindowRateLimiter] = {}

        for name, config in policies.items():
            self._limiters[name] = self._build(config)
        if DEFAULT_LIMITER not in self._limiters:
            self._limiters[DEFAULT_LIMITER] = self._build(RateLimitConfig())

    def _build(self, config: RateLimitConfig) -> InMemoryFixedWindowRateLimiter:
        return InMemoryFixedWindowRateLimiter(
            config,
            cleanup_interval_ms=self._cleanup_interval_ms,
            clock=self._clock,
        )

    @property
    def names(self) -> list[str]:
        return list(self._limiters)

    def get_limiter(self, name: str) -> InMemoryFixedWindowRateLimiter:
        """Return the limiter registered under name, or the default one."""

        return self._limiters.get(name) or self._limiters[DEFAULT_LIMITER]

    def check(self, identifier: str, endpoint: str) -> RateLimitResult:
        return self.get_limiter(endpoint).check(identifier)

    def check_limits(self, request: SupportsHeaders, endpoint: str) -> RateLimitResult:
        """Identify the caller from request headers and check the endpoint's limiter."""

        return self.check(get_client_identifier(request.headers), endpoint)

    def add_custom_limiter(self, name: str, config: RateLimitConfig) -> None:
        """Register (or replace) a named policy at runtime."""

        previous = self._limiters.get(name)
        self._limiters[name] = self._build(config)
        if previous is not None:
            previous.destroy()

        logger.info(
            "rate_limit.custom_limiter_added",
            extra={
                "limiter": name,
                "window_ms": config.window_ms,
                "max_requests": config.max_requests,
                "replaced": previous is not None,
            },
        )

    def get_metrics(self) -> dict[str, dict[str, Any]]:
        return {
            name: {
                "active": True,
                "limit": limiter.limit,
                "window_ms": limiter.window_ms,
                "tracked_identifiers": limiter.active_windows(),
            }
            for name, limiter in self._limiters.items()
        }

    def destroy(self) -> None:
        for limiter in self._limiters.values():
            limiter.destroy()
