"""
FastAPI dependencies: application context, current session and profile from the session cookie.
"""
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from weather_dashboard.config import SESSION_COOKIE_NAME
from weather_dashboard.context import AppContext
from weather_dashboard.profiles import Profile
from weather_dashboard.rate_limit import get_client_ip
from weather_dashboard.sessions import Session


def get_context(request: Request) -> AppContext:
    return request.app.state.ctx


Context = Annotated[AppContext, Depends(get_context)]


def get_session_id(request: Request) -> str | None:
    return request.cookies.get(SESSION_COOKIE_NAME) or None


def get_current_session(request: Request, ctx: Context) -> Session | None:
    """Session for the cookie (sliding expiry extended, tokens refreshed if needed), or None."""
    return ctx.sessions.resolve(get_session_id(request))


CurrentSession = Annotated[Session | None, Depends(get_current_session)]


def get_current_profile(ctx: Context, session: CurrentSession) -> Profile:
    if session is None:
        return ctx.profiles.default()
    return ctx.profiles.get_for_user(session.user_id)


def require_oidc(ctx: Context) -> AppContext:
    if not ctx.oidc.is_configured:
        raise HTTPException(status_code=501, detail="OIDC authentication not configured")
    return ctx


def enforce_rate_limit(request: Request, ctx: Context) -> None:
    """Per-client budget for the weather proxy (applies to guests and signed-in users alike)."""
    allowed, retry_after = ctx.rate_limiter.check_and_consume(get_client_ip(request))
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please try again later.",
            headers={"Retry-After": str(retry_after)},
        )
