"""In-memory sliding-window rate limiting for high-cost endpoints."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Iterable, Tuple

from codejudge.core.exceptions import RateLimitExceededError

MINUTE = 60
HOUR = 3600


@dataclass
class _Bucket:
    timestamps: Deque[float]


class InMemoryRateLimiter:
    """Sliding-window limiter for single-node deployments; held on app.state."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._lock = threading.Lock()
        self._buckets: Dict[str, _Bucket] = {}
        self._clock = clock

    def _prune(self, key: str, window_seconds: int, now: float) -> _Bucket:
        bucket = self._buckets.setdefault(key, _Bucket(timestamps=deque()))
        cutoff = now - window_seconds
        while bucket.timestamps and bucket.timestamps[0] < cutoff:
            bucket.timestamps.popleft()
        return bucket

    def enforce(self, client_key: str, limits: Iterable[Tuple[int, int]]) -> None:
        """Record one hit against every ``(limit, window_seconds)`` pair or raise.

        No window is charged when any of them is exhausted.
        """
        limits = list(limits)
        now = self._clock()
        with self._lock:
            buckets = []
            for limit, window in limits:
                bucket = self._prune(f"{client_key}:{window}", window, now)
                if len(bucket.timestamps) >= limit:
                    raise RateLimitExceededError()
                buckets.append(bucket)
            for bucket in buckets:
                bucket.timestamps.append(now)
