"""
Application context: every stateful component, built once at startup and shared by request handlers
through app.state. Replaces module-level globals so tests can build their own.
"""
import logging
from dataclasses import dataclass, field

from sqlalchemy import Engine

from weather_dashboard import config
from weather_dashboard.database import create_db_engine, create_session_factory, init_db
from weather_dashboard.oidc import OIDCClient, OIDCConfigurationError
from weather_dashboard.pending_auth import PendingAuthRegistry
from weather_dashboard.profile_service import ProfileService
from weather_dashboard.profile_store import ProfileStore
from weather_dashboard.rate_limit import RateLimiter
from weather_dashboard.sessions import SessionRegistry
from weather_dashboard.weather import WeatherClient

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    profiles: ProfileService
    sessions: SessionRegistry
    pending_auth: PendingAuthRegistry
    oidc: OIDCClient
    weather: WeatherClient
    rate_limiter: RateLimiter
    static_path: str = config.STATIC_PATH
    post_logout_redirect_uri: str | None = None
    cookie_secure: bool = True
    engine: Engine | None = field(default=None, repr=False)

    def close(self) -> None:
        self.oidc.close()
        self.weather.close()
        if self.engine is not None:
            self.engine.dispose()


def build_context() -> AppContext:
    """Wire the components from weather_dashboard.config. Never raises on DB or OIDC trouble."""
    try:
        database_url = config.resolve_database_url()
    except ValueError as e:
        logger.error("Ignoring unusable DATABASE_URL (%s); using %s", e, config.DEFAULT_DATABASE_URL)
        database_url = config.DEFAULT_DATABASE_URL
    engine = create_db_engine(database_url)
    if not init_db(engine):
        logger.warning("Continuing without a reachable database; profiles fall back to the guest profile")
    profiles = ProfileService(ProfileStore(create_session_factory(engine)))

    oidc = OIDCClient()
    if config.oidc_enabled():
        try:
            oidc.configure(
                config.OIDC_ISSUER,
                config.OIDC_CLIENT_ID,
                config.OIDC_CLIENT_SECRET,
                config.OIDC_REDIRECT_URI,
            )
        except OIDCConfigurationError as e:
            logger.error("OIDC disabled: %s", e)
    else:
        logger.info("OIDC not configured (set OIDC_ISSUER, OIDC_CLIENT_ID, OIDC_REDIRECT_URI)")

    ctx = AppContext(
        profiles=profiles,
        sessions=SessionRegistry(profiles=profiles, oidc=oidc),
        pending_auth=PendingAuthRegistry(),
        oidc=oidc,
        weather=WeatherClient(config.WEATHER_SERVICE_URL),
        rate_limiter=RateLimiter(),
        static_path=config.STATIC_PATH,
        post_logout_redirect_uri=config.OIDC_POST_LOGOUT_REDIRECT_URI,
        cookie_secure=config.COOKIE_SECURE,
        engine=engine,
    )
    logger.info(
        "Weather service: %s, static files: %s, CORS: %s",
        config.WEATHER_SERVICE_URL,
        config.STATIC_PATH,
        "enabled" if config.CORS_ENABLED else "disabled",
    )
    return ctx
