"""
Weather Dashboard backend: profile API, OIDC login, weather proxy and the static frontend.
Port 3001 by default (see weather_dashboard.cli).
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from weather_dashboard import config
from weather_dashboard.auth_routes import router as auth_router
from weather_dashboard.context import AppContext, build_context
from weather_dashboard.errors import install_error_handlers
from weather_dashboard.profile_routes import router as profile_router
from weather_dashboard.static_files import router as static_router
from weather_dashboard.weather_routes import router as weather_router

logger = logging.getLogger(__name__)


def create_app(ctx: AppContext | None = None) -> FastAPI:
    """Build the app. With ctx given (tests), it is used as-is; otherwise it is built on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "ctx", None) is None
        if owned:
            app.state.ctx = build_context()
        logger.info("Weather Dashboard started")
        yield
        if owned:
            app.state.ctx.close()
            app.state.ctx = None
        logger.info("Weather Dashboard stopped")

    app = FastAPI(title="Weather Dashboard", version="1.0.0", lifespan=lifespan)
    app.state.ctx = ctx
    install_error_handlers(app)

    if config.CORS_ENABLED:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[config.CORS_ORIGIN],
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.debug("Request: %s %s", request.method, request.url.path)
        return await call_next(request)

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "weather_dashboard"}

    app.include_router(auth_router, tags=["auth"])
    app.include_router(profile_router, tags=["profile"])
    app.include_router(weather_router, tags=["weather"])
    # Catch-alls last
    app.include_router(static_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "weather_dashboard.main:app",
        host="127.0.0.1",
        port=3001,
        reload=True,
    )
