"""
Session Manager: the single authority on "who is making this request".

Turns a login Principal into a server-side session, resolves sessions on
every request, and keeps OIDC access tokens fresh. All provider-specific
session behaviour is dispatched here and nowhere else.
"""

import logging
import time
from typing import Callable, Optional, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from services.users import upsert_user_from_principal

from .errors import DiscoveryError, RefreshError
from .oidc_service import OIDCAdapter
from .principal import OAuth2Principal, OIDCPrincipal
from .session_store import SessionStore

logger = logging.getLogger(__name__)

AnyPrincipal = Union[OIDCPrincipal, OAuth2Principal]


class SessionManager:
    """
    Args:
        oidc: Adapter used for transparent token refresh and logout URLs.
        ttl_seconds: Absolute session lifetime from creation.
        clock: Epoch-seconds source (tests pin it).
    """

    def __init__(
        self,
        oidc: OIDCAdapter,
        ttl_seconds: int,
        clock: Callable[[], float] = time.time,
    ):
        self.oidc = oidc
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def store(self, db: AsyncSession) -> SessionStore:
        return SessionStore(db, self.ttl_seconds)

    async def create_session(self, db: AsyncSession, principal: AnyPrincipal) -> str:
        """
        Upsert the principal's User row and persist a new session.

        Both writes share one commit. Returns the opaque session id.
        """
        await upsert_user_from_principal(db, principal, commit=False)
        stored = await self.store(db).create(principal)
        await db.commit()
        logger.info(
            f"Session created for {principal.subject_id} ({principal.provider}) "
            f"sid={stored.sid[:8]}"
        )
        return stored.sid

    async def resolve(self, db: AsyncSession, sid: Optional[str]) -> Optional[AnyPrincipal]:
        """
        Return the session's principal, or ``None`` when unauthenticated.

        Expired OIDC access tokens are refreshed in place. A failed refresh
        returns ``None`` for this request only; the session row is not
        touched, so a concurrent request that already refreshed it keeps
        working.
        """
        if not sid:
            return None

        store = self.store(db)
        stored = await store.load(sid)
        if stored is None:
            return None

        principal = stored.principal
        if isinstance(principal, OAuth2Principal):
            return principal

        if principal.expires_at is None:
            return None
        if not principal.is_expired(self._clock()):
            return principal

        if not principal.refresh_token:
            logger.debug(f"Access token expired, no refresh token sid={sid[:8]}")
            return None

        try:
            tokens = await self.oidc.refresh(principal.refresh_token)
        except RefreshError as exc:
            logger.info(f"Token refresh failed sid={sid[:8]}: {exc}")
            return None

        refreshed = principal.model_copy(
            update={
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token,
                "expires_at": tokens.expires_at,
            }
        )
        await store.save_principal(stored, refreshed)
        logger.debug(f"Access token refreshed sid={sid[:8]}")
        return refreshed

    async def destroy(
        self, db: AsyncSession, sid: Optional[str], home_url: str
    ) -> Tuple[str, Optional[str]]:
        """
        Delete the session.

        Returns ``(target, subject_id)``: where the browser should go next
        (the provider's end-session URL for OIDC sessions, ``home_url``
        otherwise) and whose session it was, if it was readable.
        """
        if not sid:
            return home_url, None

        store = self.store(db)
        stored = await store.load(sid, include_expired=True)
        await store.delete(sid)

        if stored is None:
            return home_url, None
        subject_id = stored.principal.subject_id
        if not isinstance(stored.principal, OIDCPrincipal):
            return home_url, subject_id

        try:
            return await self.oidc.end_session_url(home_url), subject_id
        except DiscoveryError as exc:
            logger.warning(f"End-session URL unavailable, logging out locally: {exc}")
            return home_url, subject_id

    async def purge_expired(self, db: AsyncSession) -> int:
        return await self.store(db).purge_expired()
