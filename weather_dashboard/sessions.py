"""
In-memory session registry. Session id (cookie value) -> user id, sliding idle expiry, OIDC tokens.
Bounded: when full, dead sessions are purged first, then the least recently accessed one is evicted.
"""
import logging
import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Callable

from weather_dashboard.config import SESSION_CAPACITY, SESSION_TTL_SECONDS
from weather_dashboard.oidc import OIDCError
from weather_dashboard.pkce import random_token

if TYPE_CHECKING:
    from weather_dashboard.oidc import OIDCClient
    from weather_dashboard.profile_service import ProfileService

logger = logging.getLogger(__name__)

SESSION_ID_LENGTH = 64
# Tokens are considered expired this many seconds before the provider says so
TOKEN_EXPIRY_MARGIN_SECONDS = 60


@dataclass
class Session:
    session_id: str
    user_id: str
    display_name: str
    created_at: float
    last_accessed_at: float
    expires_at: float
    is_active: bool = True
    access_token: str | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    # 0 = no OIDC tokens (legacy login); inf = provider gave no lifetime; otherwise a wall-clock timestamp
    token_expires_at: float = 0

    @property
    def has_tokens(self) -> bool:
        return self.token_expires_at > 0

    def expired(self, now: float) -> bool:
        return now >= self.expires_at

    def tokens_expired(self, now: float) -> bool:
        return self.has_tokens and self.token_expires_at < now


class SessionRegistry:
    def __init__(
        self,
        profiles: "ProfileService | None" = None,
        oidc: "OIDCClient | None" = None,
        capacity: int = SESSION_CAPACITY,
        ttl_seconds: float = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.profiles = profiles
        self.oidc = oidc
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # Ordered by last access: least recently accessed first
        self._sessions: OrderedDict[str, Session] = OrderedDict()
        self._lock = threading.Lock()
        # Session ids with a refresh in flight; waiters block on _refresh_done
        self._refreshing: set[str] = set()
        self._refresh_done = threading.Condition(self._lock)

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for s in self._sessions.values() if s.is_active)

    def create(self, user_id: str, display_name: str) -> str:
        """
        Start a session for user_id and make sure the user's profile exists (created on first login,
        name updated when the identity provider reports a different one). Returns the session id.
        """
        if self.profiles is not None:
            self.profiles.ensure_login_profile(user_id, display_name)

        with self._lock:
            now = self._clock()
            if len(self._sessions) >= self.capacity:
                self._make_room(now)
            session_id = random_token(SESSION_ID_LENGTH)
            while session_id in self._sessions:
                session_id = random_token(SESSION_ID_LENGTH)
            self._sessions[session_id] = Session(
                session_id=session_id,
                user_id=user_id,
                display_name=display_name,
                created_at=now,
                last_accessed_at=now,
                expires_at=now + self.ttl_seconds,
            )
        logger.info("Created session for user %r (%s)", user_id, display_name)
        return session_id

    def get(self, session_id: str | None) -> Session | None:
        """
        Active session snapshot, extending its idle expiry to now + ttl.
        An expired session is deactivated (not extended) and None is returned.
        """
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_active:
                return None
            now = self._clock()
            if session.expired(now):
                session.is_active = False
                logger.info("Session for user %r expired", session.user_id)
                return None
            session.last_accessed_at = now
            session.expires_at = now + self.ttl_seconds
            self._sessions.move_to_end(session_id)
            return replace(session)

    def resolve(self, session_id: str | None) -> Session | None:
        """
        get() plus lazy token refresh: a session whose OIDC tokens have expired is refreshed,
        and destroyed if the refresh fails and no concurrent request stored fresh tokens meanwhile.
        """
        session = self.get(session_id)
        if session is None or not session.tokens_expired(self._clock()):
            return session
        logger.info("Access token expired for user %r, attempting refresh", session.user_id)
        if self.refresh_tokens(session.session_id):
            return self.peek(session.session_id)
        with self._lock:
            current = self._sessions.get(session.session_id)
            if current is not None and current.is_active and not current.tokens_expired(self._clock()):
                return replace(current)
        logger.info("Token refresh failed, session invalidated")
        self.destroy(session.session_id)
        return None

    def peek(self, session_id: str) -> Session | None:
        """Snapshot without touching the sliding expiry."""
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session) if session is not None else None

    def destroy(self, session_id: str | None) -> Session | None:
        """Deactivate the session (idempotent). Returns the session as it was, or None."""
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_active:
                return None
            session.is_active = False
            snapshot = replace(session)
        logger.info("Destroyed session for user %r", snapshot.user_id)
        return snapshot

    def store_tokens(
        self,
        session_id: str,
        access_token: str,
        refresh_token: str | None,
        id_token: str | None,
        expires_in: int,
    ) -> bool:
        """
        Attach OIDC tokens; they count as expired 60 seconds before expires_in elapses.
        expires_in <= 0 (lifetime not reported) means the tokens never count as expired.
        """
        with self._lock:
            return self._store_tokens_locked(session_id, access_token, refresh_token, id_token, expires_in)

    def _store_tokens_locked(
        self,
        session_id: str,
        access_token: str,
        refresh_token: str | None,
        id_token: str | None,
        expires_in: int,
    ) -> bool:
        session = self._sessions.get(session_id)
        if session is None or not session.is_active:
            return False
        session.access_token = access_token
        session.refresh_token = refresh_token
        session.id_token = id_token
        if expires_in > 0:
            session.token_expires_at = self._clock() + expires_in - TOKEN_EXPIRY_MARGIN_SECONDS
        else:
            session.token_expires_at = math.inf
        return True

    def refresh_tokens(self, session_id: str) -> bool:
        """
        Use the session's refresh token to obtain new tokens. False (never raises) when there is no
        refresh token, no OIDC client, or the provider call fails.
        One refresh per session at a time: a concurrent caller waits for the running refresh and
        reports whether it left the session with unexpired tokens.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_active:
                return False
            if session_id in self._refreshing:
                self._refresh_done.wait_for(lambda: session_id not in self._refreshing)
                return session.is_active and not session.tokens_expired(self._clock())
            if not session.refresh_token or self.oidc is None or not self.oidc.is_configured:
                return False
            self._refreshing.add(session_id)
            previous = replace(session)

        # Network call outside the lock
        tokens = None
        stored = False
        try:
            tokens = self.oidc.refresh_token(previous.refresh_token)
        except OIDCError as e:
            logger.warning("Token refresh failed for user %r: %s", previous.user_id, e)
        finally:
            with self._lock:
                if tokens is not None:
                    stored = self._store_tokens_locked(
                        session_id,
                        tokens.access_token,
                        tokens.refresh_token or previous.refresh_token,
                        tokens.id_token or previous.id_token,
                        tokens.expires_in,
                    )
                self._refreshing.discard(session_id)
                self._refresh_done.notify_all()
        if stored:
            logger.info("Refreshed tokens for user %r", previous.user_id)
        return stored

    def _make_room(self, now: float) -> None:
        dead = [sid for sid, s in self._sessions.items() if not s.is_active or s.expired(now)]
        for sid in dead:
            del self._sessions[sid]
        if len(self._sessions) >= self.capacity:
            _, evicted = self._sessions.popitem(last=False)
            logger.warning("Session table full; evicted least recently used session of user %r", evicted.user_id)
