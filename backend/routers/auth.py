"""
Login, logout and current-user endpoints.

Public endpoints:
    GET /api/login                      — start OIDC login (redirect)
    GET /api/callback                   — finish OIDC login, set session cookie
    GET /api/auth/methods               — which login methods are available
    GET /api/auth/microsoft             — start Microsoft login (redirect)
    GET /api/auth/microsoft/callback    — finish Microsoft login
    GET /api/logout                     — end the session (redirect)

Protected endpoints:
    GET /api/auth/user                  — current user row
"""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from auth.context import AuthContext
from auth.cookies import (
    LoginState,
    RedirectInstruction,
    read_login_state,
    safe_return_to,
    sign_login_state,
    sign_session_id,
)
from auth.dependencies import get_auth_context, get_current_user, get_session_id
from auth.errors import AuthError, AuthExchangeError, NotConfigured
from config import settings
from database import get_db
from models import User
from schemas import AuthMethodsResponse, UserResponse
from utils.audit import audit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["auth"])

LOGIN_URL = "/api/login"


def _home_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def _redirect_with_login_state(instruction: RedirectInstruction) -> RedirectResponse:
    response = RedirectResponse(instruction.url, status_code=302)
    response.set_cookie(
        settings.LOGIN_STATE_COOKIE_NAME,
        sign_login_state(instruction.login_state),
        max_age=settings.LOGIN_STATE_TTL_SECONDS,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/api",
    )
    return response


def _pending_login_state(request: Request) -> Optional[LoginState]:
    cookie = request.cookies.get(settings.LOGIN_STATE_COOKIE_NAME)
    if not cookie:
        return None
    try:
        return read_login_state(cookie)
    except JWTError:
        logger.debug("Ignoring invalid login state cookie")
        return None


def _login_failed(provider: str, reason: str) -> RedirectResponse:
    audit.log_login_failure(provider, reason)
    response = RedirectResponse(LOGIN_URL, status_code=302)
    response.delete_cookie(settings.LOGIN_STATE_COOKIE_NAME, path="/api")
    return response


async def _finish_login(
    db: AsyncSession,
    auth: AuthContext,
    principal,
    login_state: LoginState,
) -> RedirectResponse:
    sid = await auth.sessions.create_session(db, principal)
    audit.set_actor(f"user:{principal.subject_id}")
    audit.log_login(principal.subject_id, principal.provider)
    logger.info(f"Login via {principal.provider}: {principal.subject_id}")

    response = RedirectResponse(safe_return_to(login_state.return_to) or "/", status_code=302)
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        sign_session_id(sid, timedelta(seconds=settings.SESSION_TTL_SECONDS)),
        max_age=settings.SESSION_TTL_SECONDS,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    response.delete_cookie(settings.LOGIN_STATE_COOKIE_NAME, path="/api")
    return response


# ── OIDC ──────────────────────────────────────────────────────────────


@router.get("/login")
async def login(
    request: Request,
    return_to: Optional[str] = Query(None, alias="returnTo"),
    auth: AuthContext = Depends(get_auth_context),
):
    """
    Redirect to the identity provider's authorization endpoint.

    The host the request arrived on picks the client registration, so the
    callback lands back on the same domain.
    """
    instruction = await auth.oidc.begin_login(
        request.url.hostname or "", return_to=safe_return_to(return_to)
    )
    return _redirect_with_login_state(instruction)


@router.get("/callback")
async def callback(
    request: Request,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    """Complete OIDC login. Any failure sends the browser back to /api/login."""
    login_state = _pending_login_state(request)
    if login_state is None:
        return _login_failed("oidc", "missing login state")

    try:
        principal = await auth.oidc.complete_login(
            dict(request.query_params), login_state
        )
    except AuthError as e:
        logger.warning(f"OIDC callback rejected: {e.message}")
        return _login_failed("oidc", e.message)

    return await _finish_login(db, auth, principal, login_state)


# ── Microsoft (OAuth2 + profile) ──────────────────────────────────────


@router.get("/auth/methods", response_model=AuthMethodsResponse)
async def auth_methods(auth: AuthContext = Depends(get_auth_context)):
    """Report which login buttons the client should offer."""
    return AuthMethodsResponse(oidc=True, microsoft=auth.oauth2_enabled)


def _require_oauth2(auth: AuthContext):
    if not auth.oauth2_enabled:
        raise NotConfigured("Microsoft authentication not configured")
    return auth.oauth2


@router.get("/auth/microsoft")
async def microsoft_login(
    request: Request,
    return_to: Optional[str] = Query(None, alias="returnTo"),
    auth: AuthContext = Depends(get_auth_context),
):
    adapter = _require_oauth2(auth)
    callback_url = str(request.url_for("microsoft_callback"))
    instruction = adapter.begin_login(callback_url, return_to=safe_return_to(return_to))
    return _redirect_with_login_state(instruction)


@router.get("/auth/microsoft/callback", name="microsoft_callback")
async def microsoft_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    adapter = _require_oauth2(auth)
    if error:
        return _login_failed("oauth2", f"provider error: {error}")

    login_state = _pending_login_state(request)
    if login_state is None:
        return _login_failed("oauth2", "missing login state")

    try:
        principal = await adapter.complete_login(code, login_state, state=state)
    except AuthExchangeError as e:
        return _login_failed("oauth2", e.message)

    return await _finish_login(db, auth, principal, login_state)


# ── Session ───────────────────────────────────────────────────────────


@router.get("/logout")
async def logout(
    request: Request,
    sid: Optional[str] = Depends(get_session_id),
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    """
    Destroy the session and clear the cookie. OIDC sessions are sent on
    to the provider's end-session endpoint; everything else goes home.
    """
    target, subject_id = await auth.sessions.destroy(db, sid, _home_url(request))
    audit.log_logout(subject_id)

    response = RedirectResponse(target, status_code=302)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return response


@router.get("/auth/user", response_model=UserResponse)
async def current_user(user: User = Depends(get_current_user)):
    """Return the signed-in user's row, whatever their membership status."""
    return user
