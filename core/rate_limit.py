import time
from collections import deque
from typing import Callable, Deque, Dict


class SlidingWindowLimiter:
    """In-process limiter: at most ``limit`` hits per key within ``window`` seconds."""

    def __init__(
        self,
        window: Callable[[], float],
        limit: Callable[[], int],
        clock: Callable[[], float] = time.monotonic,
    ):
        self._window = window
        self._limit = limit
        self._clock = clock
        self._buckets: Dict[str, Deque[float]] = {}

    def hit(self, key: str) -> bool:
        """Record a hit; False when the key is over its budget."""
        now = self._clock()
        horizon = now - self._window()
        bucket = self._buckets.setdefault(key, deque())
        while bucket and bucket[0] <= horizon:
            bucket.popleft()
        if len(bucket) >= self._limit():
            return False
        bucket.append(now)
        return True

    def reset(self) -> None:
        self._buckets.clear()
