"""
FastAPI dependencies for authentication and membership gates.

Usage in routers::

    from auth.dependencies import require_admin, require_approved_member

    @router.get("/events")
    async def list_events(user: User = Depends(require_approved_member)):
        ...

    @router.post("/events")
    async def create_event(admin: User = Depends(require_admin)):
        ...

Both gates depend on :func:`require_authenticated`, so an anonymous caller
always gets 401 before any 403 is considered. Gates re-read the User row on
every request; role and status are never taken from the session.
"""

import logging
from typing import Optional, Union

from fastapi import Depends, Request
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from models.user import STATUS_APPROVED, User
from services.users import get_user
from utils.audit import audit

from .context import AuthContext, build_auth_context
from .cookies import read_session_id
from .errors import Forbidden, Unauthorized
from .principal import OAuth2Principal, OIDCPrincipal

logger = logging.getLogger(__name__)


def get_auth_context(request: Request) -> AuthContext:
    """The process-wide :class:`AuthContext` built at startup."""
    context = getattr(request.app.state, "auth_context", None)
    if context is None:
        # Served without the lifespan hook (e.g. mounted sub-app)
        context = build_auth_context(settings)
        request.app.state.auth_context = context
    return context


def get_session_id(request: Request) -> Optional[str]:
    """Session id from the signed cookie, or ``None`` if absent or forged."""
    cookie = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not cookie:
        return None
    try:
        return read_session_id(cookie)
    except JWTError:
        logger.debug("Ignoring invalid session cookie")
        return None


async def get_optional_principal(
    sid: Optional[str] = Depends(get_session_id),
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> Optional[Union[OIDCPrincipal, OAuth2Principal]]:
    """Like :func:`require_authenticated` but returns ``None`` instead of raising."""
    return await auth.sessions.resolve(db, sid)


async def require_authenticated(
    principal: Optional[Union[OIDCPrincipal, OAuth2Principal]] = Depends(
        get_optional_principal
    ),
) -> Union[OIDCPrincipal, OAuth2Principal]:
    """
    Resolve the caller's Principal.

    Raises:
        Unauthorized: No session, expired session, or failed token refresh.
    """
    if principal is None:
        raise Unauthorized()
    audit.set_actor(f"user:{principal.subject_id}")
    return principal


async def _load_user(db: AsyncSession, principal) -> User:
    user = await get_user(db, principal.subject_id)
    if user is None:
        # Session outlived its user row; treat as signed out
        raise Unauthorized()
    return user


async def get_current_user(
    principal: Union[OIDCPrincipal, OAuth2Principal] = Depends(require_authenticated),
    db: AsyncSession = Depends(get_db),
) -> User:
    """The fresh User row for any signed-in caller, whatever their status."""
    return await _load_user(db, principal)


async def require_approved_member(
    principal: Union[OIDCPrincipal, OAuth2Principal] = Depends(require_authenticated),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Allow only users whose status is ``approved``. Admin status is not
    considered: a pending admin is still refused here.

    Raises:
        Unauthorized: Not signed in.
        Forbidden: Signed in but not an approved member.
    """
    user = await _load_user(db, principal)
    if user.status != STATUS_APPROVED:
        raise Forbidden("Your membership has not been approved")
    return user


async def require_admin(
    principal: Union[OIDCPrincipal, OAuth2Principal] = Depends(require_authenticated),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Allow only users flagged ``is_admin``, regardless of their own status.

    Raises:
        Unauthorized: Not signed in.
        Forbidden: Signed in but not an administrator.
    """
    user = await _load_user(db, principal)
    if not user.is_admin:
        raise Forbidden("Administrator access required")
    return user
