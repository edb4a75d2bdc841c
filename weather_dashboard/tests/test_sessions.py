"""Tests for the session registry: sliding expiry, eviction, token storage and refresh."""
import re
import threading
import time

import httpx

from weather_dashboard.oidc import OIDCClient
from weather_dashboard.sessions import SessionRegistry

from conftest import CLIENT_ID, CLIENT_SECRET, ISSUER, REDIRECT_URI, mock_http


def test_create_returns_random_session_id(clock):
    registry = SessionRegistry(clock=clock)
    sid = registry.create("u1", "One")
    assert re.match(r"^[A-Za-z0-9]{64}$", sid)
    assert registry.create("u1", "One") != sid
    assert len(registry) == 2


def test_create_provisions_profile(clock, profile_service):
    registry = SessionRegistry(profiles=profile_service, clock=clock)
    registry.create("u123", "Alice")
    profile = profile_service.get_for_user("u123")
    assert profile.name == "Alice"
    assert profile.is_authenticated is True


def test_get_extends_expiry(clock):
    registry = SessionRegistry(ttl_seconds=3600, clock=clock)
    sid = registry.create("u1", "One")
    created = registry.peek(sid)
    assert created.expires_at == clock.now + 3600

    clock.advance(1800)
    session = registry.get(sid)
    assert session.user_id == "u1"
    assert session.last_accessed_at == clock.now
    assert session.expires_at == clock.now + 3600


def test_get_returns_snapshot(clock):
    registry = SessionRegistry(clock=clock)
    sid = registry.create("u1", "One")
    session = registry.get(sid)
    session.user_id = "someone-else"
    assert registry.get(sid).user_id == "u1"


def test_expired_session_is_not_extended(clock):
    registry = SessionRegistry(ttl_seconds=3600, clock=clock)
    sid = registry.create("u1", "One")
    expires_at = registry.peek(sid).expires_at

    clock.advance(3600)
    assert registry.get(sid) is None
    stale = registry.peek(sid)
    assert stale.is_active is False
    assert stale.expires_at == expires_at
    assert len(registry) == 0


def test_get_unknown_or_empty_id(clock):
    registry = SessionRegistry(clock=clock)
    assert registry.get("nope") is None
    assert registry.get("") is None
    assert registry.get(None) is None


def test_destroy_is_idempotent(clock):
    registry = SessionRegistry(clock=clock)
    sid = registry.create("u1", "One")
    destroyed = registry.destroy(sid)
    assert destroyed.user_id == "u1"
    assert registry.get(sid) is None
    assert registry.destroy(sid) is None
    assert registry.destroy("unknown") is None


def test_full_table_evicts_least_recently_used(clock):
    registry = SessionRegistry(capacity=2, clock=clock)
    a = registry.create("a", "A")
    clock.advance(1)
    b = registry.create("b", "B")
    clock.advance(1)
    registry.get(a)

    c = registry.create("c", "C")
    assert registry.get(b) is None
    assert registry.get(a).user_id == "a"
    assert registry.get(c).user_id == "c"


def test_full_table_purges_dead_sessions_before_evicting(clock):
    registry = SessionRegistry(capacity=2, clock=clock)
    a = registry.create("a", "A")
    b = registry.create("b", "B")
    registry.destroy(a)

    c = registry.create("c", "C")
    assert registry.peek(a) is None
    assert registry.get(b).user_id == "b"
    assert registry.get(c).user_id == "c"


def test_store_tokens_applies_expiry_margin(clock):
    registry = SessionRegistry(clock=clock)
    sid = registry.create("u1", "One")
    assert registry.store_tokens(sid, "at", "rt", "idt", 300)
    session = registry.peek(sid)
    assert session.access_token == "at"
    assert session.refresh_token == "rt"
    assert session.id_token == "idt"
    assert session.token_expires_at == clock.now + 240
    assert not session.tokens_expired(clock.now + 240)
    assert session.tokens_expired(clock.now + 241)


def test_store_tokens_on_unknown_session(clock):
    registry = SessionRegistry(clock=clock)
    assert registry.store_tokens("nope", "at", None, None, 300) is False


def test_refresh_without_refresh_token_fails(clock, oidc_client):
    registry = SessionRegistry(oidc=oidc_client, clock=clock)
    sid = registry.create("u1", "One")
    registry.store_tokens(sid, "at", None, "idt", 300)
    assert registry.refresh_tokens(sid) is False


def test_refresh_without_configured_oidc_fails(clock):
    registry = SessionRegistry(oidc=OIDCClient(), clock=clock)
    sid = registry.create("u1", "One")
    registry.store_tokens(sid, "at", "rt", "idt", 300)
    assert registry.refresh_tokens(sid) is False


def test_refresh_replaces_tokens(clock, oidc_client, provider):
    provider.token_response = {"access_token": "at-2", "refresh_token": "rt-2", "id_token": "idt-2", "expires_in": 600}
    registry = SessionRegistry(oidc=oidc_client, clock=clock)
    sid = registry.create("u1", "One")
    registry.store_tokens(sid, "at-1", "rt-1", "idt-1", 300)

    assert registry.refresh_tokens(sid) is True
    session = registry.peek(sid)
    assert session.access_token == "at-2"
    assert session.refresh_token == "rt-2"
    assert session.id_token == "idt-2"
    assert session.token_expires_at == clock.now + 540
    sent = provider.token_requests()[-1]
    assert sent["grant_type"] == "refresh_token"
    assert sent["refresh_token"] == "rt-1"


def test_refresh_keeps_previous_tokens_when_not_rotated(clock, oidc_client, provider):
    provider.token_response = {"access_token": "at-2", "expires_in": 600}
    registry = SessionRegistry(oidc=oidc_client, clock=clock)
    sid = registry.create("u1", "One")
    registry.store_tokens(sid, "at-1", "rt-1", "idt-1", 300)

    assert registry.refresh_tokens(sid) is True
    session = registry.peek(sid)
    assert session.access_token == "at-2"
    assert session.refresh_token == "rt-1"
    assert session.id_token == "idt-1"


def test_refresh_provider_error_returns_false(clock, oidc_client, provider):
    provider.token_status = 400
    registry = SessionRegistry(oidc=oidc_client, clock=clock)
    sid = registry.create("u1", "One")
    registry.store_tokens(sid, "at-1", "rt-1", "idt-1", 300)
    assert registry.refresh_tokens(sid) is False
    assert registry.peek(sid).access_token == "at-1"


def test_resolve_refreshes_expired_tokens(clock, oidc_client, provider):
    provider.token_response = {"access_token": "at-2", "expires_in": 600}
    registry = SessionRegistry(oidc=oidc_client, clock=clock)
    sid = registry.create("u1", "One")
    registry.store_tokens(sid, "at-1", "rt-1", "idt-1", 300)

    clock.advance(241)
    session = registry.resolve(sid)
    assert session.access_token == "at-2"


def test_resolve_destroys_session_when_refresh_fails(clock, oidc_client, provider):
    provider.token_status = 401
    registry = SessionRegistry(oidc=oidc_client, clock=clock)
    sid = registry.create("u1", "One")
    registry.store_tokens(sid, "at-1", "rt-1", "idt-1", 300)

    clock.advance(241)
    assert registry.resolve(sid) is None
    assert registry.get(sid) is None


def test_resolve_leaves_legacy_sessions_alone(clock):
    registry = SessionRegistry(clock=clock)
    sid = registry.create("u1", "One")
    clock.advance(10)
    assert registry.resolve(sid).user_id == "u1"


def test_create_keeps_display_name(clock):
    registry = SessionRegistry(clock=clock)
    sid = registry.create("u123", "Alice")
    assert registry.peek(sid).display_name == "Alice"


def test_tokens_without_lifetime_never_expire(clock):
    registry = SessionRegistry(clock=clock)
    sid = registry.create("u1", "One")
    assert registry.store_tokens(sid, "at", None, "idt", 0)
    session = registry.peek(sid)
    assert session.has_tokens
    assert not session.tokens_expired(clock.now + 86400)

    clock.advance(1800)
    assert registry.resolve(sid).access_token == "at"


def test_concurrent_resolve_refreshes_once(clock, provider):
    # Rotating provider: a refresh token is accepted once, and the first refresh is held open
    used = []
    entered = threading.Event()
    release = threading.Event()

    def handler(request):
        if request.url.path != "/oauth/token":
            return provider(request)
        refresh_token = provider.form(request)["refresh_token"]
        if refresh_token in used:
            return httpx.Response(400, json={"error": "invalid_grant"})
        used.append(refresh_token)
        entered.set()
        release.wait(5)
        n = len(used) + 1
        return httpx.Response(200, json={"access_token": f"at-{n}", "refresh_token": f"rt-{n}", "expires_in": 600})

    oidc = OIDCClient(http=mock_http(handler))
    oidc.configure(ISSUER, CLIENT_ID, CLIENT_SECRET, REDIRECT_URI)
    registry = SessionRegistry(oidc=oidc, clock=clock)
    sid = registry.create("u1", "One")
    registry.store_tokens(sid, "at-1", "rt-1", "idt-1", 300)
    clock.advance(241)

    results = {}
    first = threading.Thread(target=lambda: results.__setitem__("first", registry.resolve(sid)))
    second = threading.Thread(target=lambda: results.__setitem__("second", registry.resolve(sid)))
    first.start()
    assert entered.wait(5)
    second.start()
    time.sleep(0.2)
    release.set()
    first.join(5)
    second.join(5)

    assert results["first"] is not None
    assert results["second"] is not None
    assert used.count("rt-1") == 1
    assert registry.get(sid) is not None
    assert not registry.peek(sid).tokens_expired(clock.now)


def test_resolve_keeps_session_refreshed_by_another_request(clock, oidc_client, provider, monkeypatch):
    registry = SessionRegistry(oidc=oidc_client, clock=clock)
    sid = registry.create("u1", "One")
    registry.store_tokens(sid, "at-1", "rt-1", "idt-1", 300)
    clock.advance(241)

    # Our refresh fails, but another request stored fresh tokens in the meantime
    def refresh_lost_race(session_id):
        registry.store_tokens(session_id, "at-2", "rt-2", "idt-2", 600)
        return False

    monkeypatch.setattr(registry, "refresh_tokens", refresh_lost_race)
    session = registry.resolve(sid)
    assert session is not None
    assert session.access_token == "at-2"
