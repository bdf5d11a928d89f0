"""Rate limiting adapters.

The exchange service depends on ``AbstractRateLimiter`` only, so the
in-memory limiter can later be replaced by a shared store without touching
the service or the HTTP layer.
"""

from rendezvous.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from rendezvous.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter

__all__ = ["AbstractRateLimiter", "InMemoryFixedWindowRateLimiter", "RateLimitResult"]
