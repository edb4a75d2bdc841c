"""
Weather Dashboard configuration. Values come from the environment; no secrets in this file.
Read once at startup to build the application context (see weather_dashboard.context).
"""
import os

import psycopg
from psycopg.conninfo import conninfo_to_dict
from sqlalchemy.engine import URL


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Weather microservice the /api/weather/* routes proxy to
WEATHER_SERVICE_URL = os.environ.get("WEATHER_SERVICE_URL", "http://localhost:8080").rstrip("/")

# Built frontend (index.html, assets)
STATIC_PATH = os.environ.get("STATIC_PATH", "./static")

# CORS is restricted to a single origin, with credentials (session cookie)
CORS_ENABLED = _env_bool("CORS_ENABLED", False)
CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "https://weather.limani-parou.com")

# OIDC provider; login is disabled (501) unless issuer, client id and redirect URI are all set
OIDC_ISSUER = os.environ.get("OIDC_ISSUER", "").strip()
OIDC_CLIENT_ID = os.environ.get("OIDC_CLIENT_ID", "").strip()
OIDC_CLIENT_SECRET = os.environ.get("OIDC_CLIENT_SECRET", "")
OIDC_REDIRECT_URI = os.environ.get("OIDC_REDIRECT_URI", "").strip()
OIDC_POST_LOGOUT_REDIRECT_URI = os.environ.get("OIDC_POST_LOGOUT_REDIRECT_URI", "").strip() or None

# Sessions: sliding idle timeout, bounded table
SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS", "3600"))
SESSION_CAPACITY = 100
SESSION_COOKIE_NAME = "session_id"
# Secure flag on the cookie set by the OIDC callback (disable only for plain-http development)
COOKIE_SECURE = _env_bool("COOKIE_SECURE", True)

# Pending logins (state -> PKCE verifier)
PENDING_AUTH_TTL_SECONDS = 600
PENDING_AUTH_CAPACITY = 100

# Outbound HTTP (OIDC provider and weather service)
HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30"))

# Weather endpoints: per-client budget over a 60 second window
RATE_LIMIT_PER_MINUTE = int(os.environ.get("RATE_LIMIT_PER_MINUTE", "30"))
RATE_LIMIT_MAX_TRACKED = 1000

DEFAULT_DATABASE_URL = "sqlite:///./weather_dashboard.db"


def parse_libpq_dsn(dsn: str) -> dict[str, str]:
    """Split a libpq keyword/value string ("host=db port=5432 ...") into a dict. Raises ValueError if malformed."""
    try:
        params = conninfo_to_dict(dsn)
    except psycopg.ProgrammingError as e:
        raise ValueError(f"Invalid connection string: {e}") from e
    return {k: str(v) for k, v in params.items()}


def _postgres_url(
    host: str | None,
    port: str | None,
    dbname: str | None,
    user: str | None,
    password: str | None,
    sslmode: str | None,
) -> URL:
    query = {"sslmode": sslmode} if sslmode else {}
    return URL.create(
        "postgresql+psycopg",
        username=user or None,
        password=password or None,
        host=host or None,
        port=int(port) if port else None,
        database=dbname or None,
        query=query,
    )


def resolve_database_url(environ: dict[str, str] | None = None) -> str | URL:
    """
    DATABASE_URL (SQLAlchemy URL or libpq keyword/value string), else DATABASE_HOST & co.,
    else the local SQLite development database.
    """
    env = os.environ if environ is None else environ
    raw = (env.get("DATABASE_URL") or "").strip()
    if raw:
        if "://" in raw:
            return raw
        params = parse_libpq_dsn(raw)
        return _postgres_url(
            params.get("host"),
            params.get("port"),
            params.get("dbname"),
            params.get("user"),
            params.get("password"),
            params.get("sslmode"),
        )
    host = (env.get("DATABASE_HOST") or "").strip()
    if host:
        return _postgres_url(
            host,
            env.get("DATABASE_PORT") or "5432",
            env.get("DATABASE_NAME") or "weather",
            env.get("DATABASE_USER"),
            env.get("DATABASE_PASSWORD"),
            env.get("DATABASE_SSLMODE"),
        )
    return DEFAULT_DATABASE_URL


def oidc_enabled() -> bool:
    return bool(OIDC_ISSUER and OIDC_CLIENT_ID and OIDC_REDIRECT_URI)
