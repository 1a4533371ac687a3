"""Signed cookie values (session id and in-flight login state) using python-jose."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from config import settings

logger = logging.getLogger(__name__)


@dataclass
class LoginState:
    """Values that must survive the round trip through the identity provider."""

    state: str
    provider: str
    redirect_uri: str
    nonce: Optional[str] = None
    code_verifier: Optional[str] = None
    return_to: Optional[str] = None


@dataclass
class RedirectInstruction:
    """Where to send the browser, plus the state to remember until the callback."""

    url: str
    login_state: LoginState


def _encode(payload: Dict[str, Any], expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {**payload, "iat": now, "exp": now + expires_delta}
    return jwt.encode(payload, settings.SESSION_SECRET, algorithm=settings.SESSION_ALGORITHM)


def _decode(token: str, expected_type: str) -> Dict[str, Any]:
    payload = jwt.decode(
        token,
        settings.SESSION_SECRET,
        algorithms=[settings.SESSION_ALGORITHM],
    )
    if payload.get("type") != expected_type:
        raise JWTError(f"Not a {expected_type} token")
    return payload


def sign_session_id(sid: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Wrap an opaque session id for the session cookie.

    Args:
        sid: Session store key.
        expires_delta: Signature lifetime (default: session TTL).

    Returns:
        Encoded token string.
    """
    if expires_delta is None:
        expires_delta = timedelta(seconds=settings.SESSION_TTL_SECONDS)
    return _encode({"sid": sid, "type": "session"}, expires_delta)


def read_session_id(token: str) -> str:
    """
    Verify a session cookie and return the session id inside it.

    Raises:
        JWTError: If the cookie is invalid, expired, or tampered with.
    """
    payload = _decode(token, "session")
    sid = payload.get("sid")
    if not sid:
        raise JWTError("Session cookie missing sid")
    return sid


def sign_login_state(login_state: LoginState) -> str:
    return _encode(
        {
            "type": "login_state",
            "state": login_state.state,
            "provider": login_state.provider,
            "redirect_uri": login_state.redirect_uri,
            "nonce": login_state.nonce,
            "code_verifier": login_state.code_verifier,
            "return_to": login_state.return_to,
        },
        timedelta(seconds=settings.LOGIN_STATE_TTL_SECONDS),
    )


def read_login_state(token: str) -> LoginState:
    """
    Verify a login-state cookie.

    Raises:
        JWTError: If the cookie is invalid or older than the login window.
    """
    payload = _decode(token, "login_state")
    return LoginState(
        state=payload["state"],
        provider=payload["provider"],
        redirect_uri=payload["redirect_uri"],
        nonce=payload.get("nonce"),
        code_verifier=payload.get("code_verifier"),
        return_to=payload.get("return_to"),
    )


def safe_return_to(value: Optional[str]) -> Optional[str]:
    """Accept only same-site relative paths as post-login destinations."""
    if not value or not value.startswith("/") or value.startswith("//"):
        return None
    return value
