"""
Database engine and session factory. PostgreSQL (psycopg) in production, SQLite for development and tests.
"""
import logging

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from weather_dashboard.models import Base

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str | URL) -> Engine:
    url = make_url(database_url)
    if url.drivername in ("postgresql", "postgres"):
        url = url.set(drivername="postgresql+psycopg")
    if url.get_backend_name() == "sqlite":
        # In-memory needs StaticPool so all connections share the same DB (tests);
        # check_same_thread=False because FastAPI runs sync routes in a thread pool
        if url.database in (None, "", ":memory:"):
            return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> bool:
    """Create tables. Returns False (and logs) if the database is unreachable; the app keeps running."""
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        logger.error("Database initialisation failed: %s", e)
        return False
    logger.info("Database ready (%s)", engine.url.render_as_string(hide_password=True))
    return True
