"""
In-memory registry of pending logins (state -> PKCE code_verifier).
Filled by /api/auth/login, consumed exactly once by /api/auth/callback. Bounded, with a TTL.
"""
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from weather_dashboard.config import PENDING_AUTH_CAPACITY, PENDING_AUTH_TTL_SECONDS
from weather_dashboard.pkce import generate_code_verifier, generate_state

logger = logging.getLogger(__name__)


class PendingAuthCapacityError(Exception):
    """Raised when every slot holds a live (unexpired) login attempt."""


@dataclass
class PendingAuth:
    state: str
    code_verifier: str
    created_at: float

    def expired(self, now: float, ttl: float) -> bool:
        return (now - self.created_at) > ttl


class PendingAuthRegistry:
    def __init__(
        self,
        capacity: int = PENDING_AUTH_CAPACITY,
        ttl_seconds: float = PENDING_AUTH_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # Insertion order == creation order, so the oldest entries come first
        self._pending: OrderedDict[str, PendingAuth] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def begin_login(self) -> tuple[str, str]:
        """
        Create and store a new (state, code_verifier) pair.
        Expired entries are recycled when full; raises PendingAuthCapacityError if none are.
        """
        state = generate_state()
        code_verifier = generate_code_verifier()
        with self._lock:
            now = self._clock()
            if len(self._pending) >= self.capacity:
                self._purge_expired(now)
            if len(self._pending) >= self.capacity:
                logger.warning("Pending login table full (%d live entries)", len(self._pending))
                raise PendingAuthCapacityError("Too many login attempts in progress")
            self._pending[state] = PendingAuth(state=state, code_verifier=code_verifier, created_at=now)
        return state, code_verifier

    def consume(self, state: str) -> str | None:
        """Return the verifier for state and forget it. Unknown, replayed or expired -> None."""
        with self._lock:
            entry = self._pending.pop(state, None)
            if entry is None:
                return None
            if entry.expired(self._clock(), self.ttl_seconds):
                logger.info("Rejected expired login state")
                return None
            return entry.code_verifier

    def _purge_expired(self, now: float) -> None:
        expired = [s for s, p in self._pending.items() if p.expired(now, self.ttl_seconds)]
        for s in expired:
            del self._pending[s]
        if expired:
            logger.debug("Recycled %d expired login states", len(expired))
