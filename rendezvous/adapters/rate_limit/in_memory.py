"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Windows are anchored at each identity's first request, not at wall-clock
  boundaries, so a client may burst up to twice the limit across a reset.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from rendezvous.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

logger = logging.getLogger(__name__)


@dataclass
class _WindowState:
    window_start: float
    count: int


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a fixed time window per key.

    On the first request from a key, or once ``window_seconds`` have passed
    since the window opened, the window restarts at the current instant with
    a count of one. Within a window, requests are admitted while the count
    stays within ``limit``; rejected requests do not advance the count.

    Expired windows are swept at most once per ``window_seconds`` so that
    one-off clients do not accumulate forever.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            limit: Maximum number of admitted requests per window.
            window_seconds: Size of the fixed window in seconds.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If limit or window_seconds are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}
        self._last_sweep = clock()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._state_by_key)

    def _is_expired(self, state: _WindowState, now: float) -> bool:
        return now - state.window_start >= self._window_seconds

    def _build_allowed_result(self, state: _WindowState) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            limit=self._limit,
            remaining=max(0, self._limit - state.count),
            reset_at=int(math.ceil(state.window_start + self._window_seconds)),
            retry_after_seconds=None,
        )

    def _build_blocked_result(self, state: _WindowState, now: float) -> RateLimitResult:
        reset_at = state.window_start + self._window_seconds
        return RateLimitResult(
            allowed=False,
            limit=self._limit,
            remaining=0,
            reset_at=int(math.ceil(reset_at)),
            retry_after_seconds=max(1, int(math.ceil(reset_at - now))),
        )

    def _sweep_locked(self, now: float) -> int:
        expired_keys = [
            key for key, state in self._state_by_key.items() if self._is_expired(state, now)
        ]
        for key in expired_keys:
            del self._state_by_key[key]
        self._last_sweep = now
        if expired_keys:
            logger.debug(
                "rate_limit.swept",
                extra={"evicted": len(expired_keys), "tracked": len(self._state_by_key)},
            )
        return len(expired_keys)

    def sweep(self) -> int:
        """Drop every key whose window has elapsed.

        Returns:
            Number of keys evicted.
        """
        with self._lock:
            return self._sweep_locked(self._clock())

    def consume(self, key: str) -> RateLimitResult:
        """Count one request for ``key`` and decide admission.

        Args:
            key: Unique identifier for rate limiting (e.g., client IP).

        Returns:
            RateLimitResult with allowance decision and metadata.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self._window_seconds:
                self._sweep_locked(now)

            state = self._state_by_key.get(key)
            if state is None or self._is_expired(state, now):
                state = _WindowState(window_start=now, count=1)
                self._state_by_key[key] = state
                return self._build_allowed_result(state)

            if state.count + 1 <= self._limit:
                state.count += 1
                return self._build_allowed_result(state)

            return self._build_blocked_result(state, now)
