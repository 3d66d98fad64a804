"""Rate limiter interfaces.

The API depends on this abstraction (not the concrete implementation) so the
storage backend can be swapped later (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable


def _identity(identifier: str) -> str:
    return identifier


@dataclass
class RateLimitConfig:
    """Policy for one fixed-window limiter.

    Attributes:
        window_ms: Window length in milliseconds.
        max_requests: Requests admitted per window and key.
        key_generator: Maps a caller identifier to its storage key.
        skip_successful_requests: Reserved; not consulted by the limiter.
        skip_failed_requests: Reserved; not consulted by the limiter.
    """

    window_ms: int = 60_000
    max_requests: int = 100
    key_generator: Callable[[str], str] = field(default=_identity)
    skip_successful_requests: bool = False
    skip_failed_requests: bool = False


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        success: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: Epoch milliseconds when the current window resets.
        retry_after: Milliseconds until the window resets, only when blocked.
    """

    success: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int | None = None


@dataclass
class RateLimitWindow:
    """Per-key counter for the active window."""

    identifier: str
    count: int
    reset_at: int


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def check(self, identifier: str) -> RateLimitResult:
        """Test admission for identifier and consume one unit when allowed.

        Args:
            identifier: Caller identity (e.g., client IP).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def reset(self, identifier: str) -> None:
        """Forget the current window for identifier."""
        raise NotImplementedError

    @abstractmethod
    def get_status(self, identifier: str) -> RateLimitWindow | None:
        """Return the current window for identifier without side effects."""
        raise NotImplementedError

    def destroy(self) -> None:
        """Release background resources. No-op by default."""
