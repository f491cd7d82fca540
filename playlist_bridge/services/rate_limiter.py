from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from threading import Event, Lock
from time import monotonic


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: float


class SlidingWindowRateLimiter:
    """Requests-per-window limiter shared by every run against one provider."""

    def __init__(
        self,
        *,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._max_requests = max(1, max_requests)
        self._window_seconds = max(0.0, window_seconds)
        self._clock = clock
        self._lock = Lock()
        self._buckets: dict[str, deque[float]] = {}

    def take(self, key: str) -> RateLimitDecision:
        now = self._clock()
        cutoff = now - self._window_seconds

        with self._lock:
            bucket = self._buckets.setdefault(key, deque())
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()

            if len(bucket) >= self._max_requests:
                retry_after_seconds = max(0.01, (bucket[0] + self._window_seconds) - now)
                return RateLimitDecision(
                    allowed=False,
                    limit=self._max_requests,
                    remaining=0,
                    retry_after_seconds=retry_after_seconds,
                )

            bucket.append(now)
            return RateLimitDecision(
                allowed=True,
                limit=self._max_requests,
                remaining=max(self._max_requests - len(bucket), 0),
                retry_after_seconds=0.0,
            )

    def acquire(self, key: str, cancel_event: Event) -> bool:
        """Blocks until a slot for ``key`` frees up. Returns False if cancelled first."""
        while True:
            decision = self.take(key)
            if decision.allowed:
                return True
            if cancel_event.wait(decision.retry_after_seconds):
                return False
