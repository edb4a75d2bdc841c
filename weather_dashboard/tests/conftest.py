"""
Pytest configuration for weather_dashboard. In-memory SQLite, no real identity provider or weather service:
outbound HTTP goes through httpx.MockTransport fakes defined here.
"""
import os
from urllib.parse import parse_qs

# Set before weather_dashboard.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
for _var in ("OIDC_ISSUER", "OIDC_CLIENT_ID", "OIDC_CLIENT_SECRET", "OIDC_REDIRECT_URI", "CORS_ENABLED"):
    os.environ.pop(_var, None)

import httpx
import pytest
from fastapi.testclient import TestClient

from weather_dashboard.context import AppContext
from weather_dashboard.database import create_db_engine, create_session_factory, init_db
from weather_dashboard.main import create_app
from weather_dashboard.oidc import OIDCClient
from weather_dashboard.pending_auth import PendingAuthRegistry
from weather_dashboard.profile_service import ProfileService
from weather_dashboard.profile_store import ProfileStore
from weather_dashboard.rate_limit import RateLimiter
from weather_dashboard.sessions import SessionRegistry
from weather_dashboard.weather import WeatherClient

ISSUER = "https://id.example.com"
CLIENT_ID = "weather-dashboard"
CLIENT_SECRET = "s3cret"
REDIRECT_URI = "https://weather.example.com/api/auth/callback"
WEATHER_URL = "http://weather.internal:8080"


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """Minimal OIDC provider behind httpx.MockTransport. Records every request it sees."""

    def __init__(self):
        self.discovery_status = 200
        self.discovery = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/oauth/authorize",
            "token_endpoint": f"{ISSUER}/oauth/token",
            "userinfo_endpoint": f"{ISSUER}/oauth/userinfo",
            "end_session_endpoint": f"{ISSUER}/oauth/end-session",
        }
        self.token_status = 200
        self.token_response = {
            "access_token": "at-1",
            "id_token": "idt-1",
            "refresh_token": "rt-1",
            "expires_in": 300,
            "token_type": "Bearer",
        }
        self.userinfo_status = 200
        self.userinfo_response = {"sub": "u123", "name": "Alice", "email": "alice@example.com"}
        self.requests: list[httpx.Request] = []

    def form(self, request: httpx.Request) -> dict[str, str]:
        return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}

    def token_requests(self) -> list[dict[str, str]]:
        return [self.form(r) for r in self.requests if r.url.path == "/oauth/token"]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/.well-known/openid-configuration":
            return httpx.Response(self.discovery_status, json=self.discovery)
        if path == "/oauth/token" and request.method == "POST":
            return httpx.Response(self.token_status, json=self.token_response)
        if path == "/oauth/userinfo":
            if request.headers.get("authorization", "") != f"Bearer {self.token_response.get('access_token')}":
                return httpx.Response(401, json={"error": "invalid_token"})
            return httpx.Response(self.userinfo_status, json=self.userinfo_response)
        return httpx.Response(404, json={"error": "not_found"})


class FakeWeatherService:
    def __init__(self):
        self.status = 200
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, text="upstream error")
        params = dict(request.url.params)
        if request.url.path == "/current":
            return httpx.Response(200, json={"location": params.get("location"), "temp_c": 21.5})
        if request.url.path == "/forecast":
            days = int(params.get("days", "1"))
            return httpx.Response(200, json={"location": params.get("location"), "days": [{}] * days})
        return httpx.Response(404)


def mock_http(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def profile_service():
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    yield ProfileService(ProfileStore(create_session_factory(engine)))
    engine.dispose()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def oidc_client(provider):
    client = OIDCClient(http=mock_http(provider))
    client.configure(ISSUER, CLIENT_ID, CLIENT_SECRET, REDIRECT_URI)
    return client


@pytest.fixture
def weather_service():
    return FakeWeatherService()


@pytest.fixture
def ctx(profile_service, oidc_client, weather_service, clock):
    return AppContext(
        profiles=profile_service,
        sessions=SessionRegistry(profiles=profile_service, oidc=oidc_client, clock=clock),
        pending_auth=PendingAuthRegistry(clock=clock),
        oidc=oidc_client,
        weather=WeatherClient(WEATHER_URL, http=mock_http(weather_service)),
        rate_limiter=RateLimiter(clock=clock),
    )


@pytest.fixture
def client(ctx):
    # https so the Secure session cookie is sent back by the test client
    return TestClient(create_app(ctx), base_url="https://testserver")
