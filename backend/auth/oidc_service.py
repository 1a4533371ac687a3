"""
OIDC identity-provider adapter.

Handles the authorization-code flow (with PKCE) against a discovered
provider, maps ID-token claims onto an :class:`OIDCPrincipal`, and runs the
refresh-token grant. One client registration per externally visible domain;
all domains share the same discovered configuration.
Uses ``httpx`` for HTTP calls and ``python-jose`` to read ID-token claims.
"""

import base64
import hashlib
import logging
import secrets
import time
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt

from .cookies import LoginState, RedirectInstruction
from .discovery import DiscoveryCache, ProviderConfig
from .errors import AuthExchangeError, DiscoveryError, RefreshError
from .principal import OIDCPrincipal, TokenSet
from .token_client import OAuthTokenError, request_tokens

logger = logging.getLogger(__name__)

OIDC_SCOPE = "openid email profile offline_access"


def _pkce_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def _first_claim(claims: Dict[str, Any], *names: str) -> Optional[str]:
    for name in names:
        value = claims.get(name)
        if value:
            return str(value)
    return None


class OIDCAdapter:
    """
    Authorization-code + refresh-token client for one OIDC issuer.

    Args:
        issuer_url: Base issuer URL (e.g. ``https://replit.com/oidc``).
        client_id: Registered client id.
        client_secret: Client secret, or ``None`` for public clients.
        domains: Host names the app is served from.
        discovery: Shared :class:`DiscoveryCache`.
        callback_scheme: ``https`` in production.
        timeout: Per-call httpx timeout in seconds.
        transport: Optional httpx transport (tests inject a mock).
    """

    provider = "oidc"

    def __init__(
        self,
        issuer_url: str,
        client_id: str,
        domains: List[str],
        discovery: DiscoveryCache,
        client_secret: Optional[str] = None,
        callback_scheme: str = "https",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.issuer_url = issuer_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.domains = list(domains)
        self.discovery = discovery
        self.callback_scheme = callback_scheme
        self.timeout = timeout
        self._transport = transport

    async def config(self) -> ProviderConfig:
        return await self.discovery.get(self.issuer_url, self.client_id)

    def callback_url(self, domain: str) -> str:
        """Per-domain redirect URI; raises for domains that were not registered."""
        if domain not in self.domains:
            raise AuthExchangeError(f"Login is not enabled for domain '{domain}'")
        return f"{self.callback_scheme}://{domain}/api/callback"

    # ── Login ──────────────────────────────────────────────────────────

    async def begin_login(
        self, requested_domain: str, return_to: Optional[str] = None
    ) -> RedirectInstruction:
        """
        Build the authorization redirect for ``requested_domain``.

        Raises:
            AuthExchangeError: If the domain has no client registration.
            DiscoveryError: If provider metadata cannot be loaded.
        """
        redirect_uri = self.callback_url(requested_domain)
        config = await self.config()

        login_state = LoginState(
            state=secrets.token_urlsafe(24),
            provider=self.provider,
            redirect_uri=redirect_uri,
            nonce=secrets.token_urlsafe(24),
            code_verifier=secrets.token_urlsafe(48),
            return_to=return_to,
        )
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": OIDC_SCOPE,
            "state": login_state.state,
            "nonce": login_state.nonce,
            "code_challenge": _pkce_challenge(login_state.code_verifier),
            "code_challenge_method": "S256",
            "prompt": "login consent",
        }
        separator = "&" if "?" in config.authorization_endpoint else "?"
        url = f"{config.authorization_endpoint}{separator}{urlencode(params)}"
        return RedirectInstruction(url=url, login_state=login_state)

    async def complete_login(
        self,
        callback_params: Mapping[str, str],
        login_state: LoginState,
    ) -> OIDCPrincipal:
        """
        Exchange the callback's authorization code and build the principal.

        Raises:
            AuthExchangeError: On provider error, state/nonce mismatch, or a
                failed code exchange (invalid, expired or replayed code).
            DiscoveryError: If provider metadata cannot be loaded.
        """
        if callback_params.get("error"):
            raise AuthExchangeError(
                f"Identity provider returned error: {callback_params['error']}"
            )
        if login_state.provider != self.provider:
            raise AuthExchangeError("Login state belongs to another provider")
        state = callback_params.get("state")
        if not state or not secrets.compare_digest(state, login_state.state):
            raise AuthExchangeError("Login state mismatch")
        code = callback_params.get("code")
        if not code:
            raise AuthExchangeError("Missing authorization code")

        config = await self.config()
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": login_state.redirect_uri,
            "client_id": self.client_id,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret
        if login_state.code_verifier:
            data["code_verifier"] = login_state.code_verifier

        try:
            tokens = await request_tokens(
                config.token_endpoint, data, self.timeout, self._transport
            )
        except (OAuthTokenError, httpx.HTTPError) as exc:
            logger.warning(f"OIDC code exchange failed: {exc}")
            raise AuthExchangeError("Authorization code exchange failed") from exc

        claims = await self._claims(config, tokens)
        if login_state.nonce and claims.get("nonce") != login_state.nonce:
            raise AuthExchangeError("ID token nonce mismatch")

        subject = claims.get("sub")
        if not subject:
            raise AuthExchangeError("Token response carried no subject")

        try:
            expires_at = self._expires_at(claims, tokens)
        except (TypeError, ValueError) as exc:
            raise AuthExchangeError("Token response carried an unreadable expiry") from exc

        return OIDCPrincipal(
            subject_id=str(subject),
            email=_first_claim(claims, "email"),
            given_name=_first_claim(claims, "first_name", "given_name"),
            family_name=_first_claim(claims, "last_name", "family_name"),
            avatar_url=_first_claim(claims, "profile_image_url", "picture"),
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token"),
            expires_at=expires_at,
        )

    # ── Refresh ────────────────────────────────────────────────────────

    async def refresh(self, refresh_token: str) -> TokenSet:
        """
        Run the refresh-token grant.

        Raises:
            RefreshError: Token revoked/expired, provider unreachable, or
                timeout.
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret

        try:
            config = await self.config()
            tokens = await request_tokens(
                config.token_endpoint, data, self.timeout, self._transport
            )
        except (OAuthTokenError, httpx.HTTPError) as exc:
            logger.info(f"OIDC token refresh failed: {exc}")
            raise RefreshError("Session could not be refreshed") from exc
        except DiscoveryError as exc:
            logger.warning(f"OIDC token refresh aborted: {exc}")
            raise RefreshError("Session could not be refreshed") from exc

        try:
            claims = self._id_token_claims(tokens.get("id_token"))
            expires_at = self._expires_at(claims, tokens)
        except AuthExchangeError as exc:
            raise RefreshError("Refreshed ID token is malformed") from exc
        except (TypeError, ValueError) as exc:
            logger.warning(f"OIDC refresh returned an unreadable expiry: {exc}")
            raise RefreshError("Session could not be refreshed") from exc
        return TokenSet(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token") or refresh_token,
            expires_at=expires_at,
        )

    # ── Logout ─────────────────────────────────────────────────────────

    async def end_session_url(self, post_logout_redirect_uri: str) -> str:
        """RP-initiated logout URL, or the redirect target if unsupported."""
        config = await self.config()
        if not config.end_session_endpoint:
            return post_logout_redirect_uri
        params = urlencode(
            {
                "client_id": self.client_id,
                "post_logout_redirect_uri": post_logout_redirect_uri,
            }
        )
        separator = "&" if "?" in config.end_session_endpoint else "?"
        return f"{config.end_session_endpoint}{separator}{params}"

    # ── Internals ──────────────────────────────────────────────────────

    @staticmethod
    def _id_token_claims(id_token: Optional[str]) -> Dict[str, Any]:
        """
        Read ID-token claims.

        The token came straight from the token endpoint over TLS, so the
        signature check is not required here (OIDC Core §3.1.3.7).
        """
        if not id_token:
            return {}
        try:
            return jwt.get_unverified_claims(id_token)
        except JWTError as exc:
            raise AuthExchangeError("Malformed ID token") from exc

    async def _claims(
        self, config: ProviderConfig, tokens: Dict[str, Any]
    ) -> Dict[str, Any]:
        claims = self._id_token_claims(tokens.get("id_token"))
        if claims.get("sub") or not config.userinfo_endpoint:
            return claims

        # No usable ID token: fall back to the userinfo endpoint
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self.timeout
            ) as client:
                resp = await client.get(
                    config.userinfo_endpoint,
                    headers={"Authorization": f"Bearer {tokens['access_token']}"},
                )
                resp.raise_for_status()
                userinfo = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"OIDC userinfo fetch failed: {exc}")
            raise AuthExchangeError("Failed to fetch user information") from exc
        if not isinstance(userinfo, dict):
            raise AuthExchangeError("Userinfo response is not a JSON object")
        return {**claims, **userinfo}

    @staticmethod
    def _expires_at(claims: Dict[str, Any], tokens: Dict[str, Any]) -> int:
        exp = claims.get("exp")
        if exp is not None:
            return int(exp)
        expires_in = int(tokens.get("expires_in", 3600))
        return int(time.time()) + expires_in
