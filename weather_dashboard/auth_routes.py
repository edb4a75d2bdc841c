"""
Login and logout: OIDC authorization code + PKCE (/api/auth/login, /api/auth/callback),
the deprecated direct login (/api/login) and /api/logout.
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse

from weather_dashboard.config import SESSION_COOKIE_NAME
from weather_dashboard.context import AppContext
from weather_dashboard.deps import Context, get_session_id, require_oidc
from weather_dashboard.oidc import OIDCError
from weather_dashboard.pending_auth import PendingAuthCapacityError
from weather_dashboard.pkce import code_challenge
from weather_dashboard.schemas import LegacyLoginRequest

logger = logging.getLogger(__name__)
router = APIRouter()

OIDCContext = Annotated[AppContext, Depends(require_oidc)]


def _login_error_redirect(reason: str) -> RedirectResponse:
    return RedirectResponse(url=f"/#/login?error={reason}", status_code=302)


@router.get("/api/auth/login")
def oidc_login(ctx: OIDCContext):
    """Start a login: store state + PKCE verifier, return the provider URL for the browser to visit."""
    try:
        state, code_verifier = ctx.pending_auth.begin_login()
    except PendingAuthCapacityError:
        raise HTTPException(status_code=503, detail="Too many logins in progress. Please try again shortly.")
    url = ctx.oidc.build_authorization_url(state, code_challenge(code_verifier))
    return {"redirectUrl": url}


@router.get("/api/auth/callback")
def oidc_callback(
    ctx: OIDCContext,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
):
    """
    Provider redirect target. Validates and consumes state, exchanges the code (with the PKCE verifier),
    fetches userinfo, creates the session and sets the session cookie.
    """
    if error:
        logger.warning("OIDC provider returned error: %s", error)
        if state:
            ctx.pending_auth.consume(state)
        return _login_error_redirect("auth_failed")

    if not code or not state:
        raise HTTPException(status_code=400, detail="Missing code or state")

    code_verifier = ctx.pending_auth.consume(state)
    if code_verifier is None:
        logger.warning("Invalid or expired login state")
        raise HTTPException(status_code=400, detail="Invalid state")

    try:
        tokens = ctx.oidc.exchange_code(code, code_verifier)
    except OIDCError as e:
        logger.error("Failed to exchange code for tokens: %s", e)
        return _login_error_redirect("token_exchange_failed")

    try:
        userinfo = ctx.oidc.fetch_userinfo(tokens.access_token)
    except OIDCError as e:
        logger.error("Failed to get user info: %s", e)
        return _login_error_redirect("userinfo_failed")

    logger.info("User authenticated: %s (%s)", userinfo.display_name, userinfo.sub)
    session_id = ctx.sessions.create(userinfo.sub, userinfo.display_name)
    ctx.sessions.store_tokens(
        session_id,
        tokens.access_token,
        tokens.refresh_token,
        tokens.id_token,
        tokens.expires_in,
    )

    response = RedirectResponse(url="/", status_code=302)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        session_id,
        path="/",
        httponly=True,
        secure=ctx.cookie_secure,
        samesite="lax",
    )
    return response


@router.post("/api/login", deprecated=True)
def legacy_login(body: LegacyLoginRequest, ctx: Context):
    """Deprecated direct login without OIDC; kept for older frontends. Use /api/auth/login."""
    session_id = ctx.sessions.create(body.user_id, body.name)
    response = JSONResponse(
        {"success": True, "userId": body.user_id, "name": body.name, "sessionId": session_id}
    )
    response.set_cookie(SESSION_COOKIE_NAME, session_id, path="/", httponly=True, samesite="lax")
    return response


@router.post("/api/logout")
def logout(request: Request, ctx: Context):
    """End the session and clear the cookie. Includes the provider logout URL when there is one."""
    session = ctx.sessions.destroy(get_session_id(request))
    body: dict = {"success": True}
    if session is not None and session.id_token and ctx.oidc.is_configured:
        url = ctx.oidc.logout_url(session.id_token, ctx.post_logout_redirect_uri)
        if url:
            body["logoutUrl"] = url
    response = JSONResponse(body)
    response.delete_cookie(SESSION_COOKIE_NAME, path="/", httponly=True)
    return response
