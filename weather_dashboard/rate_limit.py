"""
Rate limiting for the weather proxy. In-memory sliding window per client key (IP).
"""
import logging
import math
import threading
import time
from typing import Callable

from fastapi import Request

from weather_dashboard.config import RATE_LIMIT_MAX_TRACKED, RATE_LIMIT_PER_MINUTE

logger = logging.getLogger(__name__)

_WINDOW_SECONDS = 60


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


class RateLimiter:
    def __init__(
        self,
        limit: int = RATE_LIMIT_PER_MINUTE,
        window_seconds: int = _WINDOW_SECONDS,
        max_tracked: int = RATE_LIMIT_MAX_TRACKED,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self.max_tracked = max_tracked
        self._clock = clock
        self._store: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def check_and_consume(self, key: str) -> tuple[bool, int | None]:
        """
        Check if the key is under the limit for the sliding window; if so, record this request.
        Returns (allowed, retry_after_seconds). When not allowed, retry_after_seconds is the
        suggested Retry-After value (>= 1).
        """
        if self.limit <= 0:
            return True, None
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if key not in self._store and len(self._store) >= self.max_tracked:
                self._drop_idle(cutoff)
                if len(self._store) >= self.max_tracked:
                    logger.warning("Rate limit table full, allowing request from %s", key)
                    return True, None
            timestamps = self._store.setdefault(key, [])
            timestamps[:] = [t for t in timestamps if t > cutoff]
            if len(timestamps) >= self.limit:
                oldest = min(timestamps)
                retry_after = max(1, math.ceil(self.window_seconds - (now - oldest)))
                logger.warning("Rate limit: blocked %s (%d requests in %ds)", key, len(timestamps), self.window_seconds)
                return False, retry_after
            timestamps.append(now)
            return True, None

    def _drop_idle(self, cutoff: float) -> None:
        idle = [k for k, ts in self._store.items() if not ts or max(ts) <= cutoff]
        for k in idle:
            del self._store[k]
