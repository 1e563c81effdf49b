"""Per-client rate limiter for job submission, one instance per application."""

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter


class RateLimiter:
    """Allow at most *max_requests* per key within any *window_seconds* span.

    Moving window over in-process memory; expired keys are dropped by the storage.
    """

    def __init__(self, max_requests: int = 3, window_seconds: int = 60) -> None:
        self._item = RateLimitItemPerSecond(max_requests, window_seconds)
        self._storage = MemoryStorage()
        self._strategy = MovingWindowRateLimiter(self._storage)

    def hit(self, key: str) -> bool:
        """Record a request for *key*; return False (and record nothing) when over the limit."""
        return self._strategy.hit(self._item, key)

    def reset(self) -> None:
        self._storage.reset()
