"""Startup wiring for the authentication components."""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from config import Settings

from .discovery import DiscoveryCache
from .oauth2_service import OAuth2ProfileAdapter
from .oidc_service import OIDCAdapter
from .session_manager import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class AuthContext:
    """
    Identity adapters and the Session Manager, built once per process.

    ``oauth2`` is ``None`` when the optional provider has no credentials;
    routes check :attr:`oauth2_enabled` rather than the environment.
    """

    oidc: OIDCAdapter
    sessions: SessionManager
    oauth2: Optional[OAuth2ProfileAdapter] = None

    @property
    def oauth2_enabled(self) -> bool:
        return self.oauth2 is not None


def build_auth_context(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AuthContext:
    discovery = DiscoveryCache(
        ttl_seconds=settings.OIDC_DISCOVERY_TTL_SECONDS,
        timeout=settings.IDP_TIMEOUT_SECONDS,
        transport=transport,
    )
    oidc = OIDCAdapter(
        issuer_url=settings.OIDC_ISSUER_URL,
        client_id=settings.OIDC_CLIENT_ID,
        client_secret=settings.OIDC_CLIENT_SECRET,
        domains=settings.domains,
        discovery=discovery,
        callback_scheme=settings.CALLBACK_SCHEME,
        timeout=settings.IDP_TIMEOUT_SECONDS,
        transport=transport,
    )

    oauth2 = None
    if settings.oauth2_configured:
        logger.info("Setting up Microsoft authentication...")
        oauth2 = OAuth2ProfileAdapter(
            client_id=settings.OAUTH2_CLIENT_ID,
            client_secret=settings.OAUTH2_CLIENT_SECRET,
            authorize_url=settings.OAUTH2_AUTHORIZE_URL,
            token_url=settings.OAUTH2_TOKEN_URL,
            profile_url=settings.OAUTH2_PROFILE_URL,
            scope=settings.OAUTH2_SCOPE,
            timeout=settings.IDP_TIMEOUT_SECONDS,
            transport=transport,
        )
    else:
        logger.info("Microsoft authentication not configured - missing credentials")

    return AuthContext(
        oidc=oidc,
        sessions=SessionManager(oidc, ttl_seconds=settings.SESSION_TTL_SECONDS),
        oauth2=oauth2,
    )
