"""Rate limiter interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window ends.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for per-identity rate limiters."""

    @abstractmethod
    def consume(self, key: str) -> RateLimitResult:
        """Record one request for ``key`` and decide whether it is admitted.

        Args:
            key: Client identity (e.g., source IP address).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    def admit(self, key: str) -> bool:
        """Shorthand for ``consume(key).allowed``."""
        return self.consume(key).allowed
