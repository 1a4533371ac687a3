"""
OAuth2 authorization-code + profile-fetch adapter.

For providers without OIDC discovery (Microsoft Graph by default). The
provider's profile document is mapped onto an :class:`OAuth2Principal`
through a :class:`ProfileFieldMap`. There is no refresh-token handling:
sessions from this provider never need token refresh.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from .cookies import LoginState, RedirectInstruction
from .errors import AuthExchangeError
from .principal import OAuth2Principal
from .token_client import OAuthTokenError, request_tokens

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProfileFieldMap:
    """Candidate profile keys per Principal field, first non-empty wins."""

    subject_id: Tuple[str, ...] = ("id",)
    email: Tuple[str, ...] = ("mail", "userPrincipalName", "email")
    given_name: Tuple[str, ...] = ("givenName", "given_name")
    family_name: Tuple[str, ...] = ("surname", "family_name")
    avatar_url: Tuple[str, ...] = ("picture", "photo")

    def extract(self, profile: Dict[str, Any], field: str) -> Optional[str]:
        for key in getattr(self, field):
            value = profile.get(key)
            if value:
                return str(value)
        return None


MICROSOFT_GRAPH_FIELDS = ProfileFieldMap()


class OAuth2ProfileAdapter:
    """
    Client for a plain OAuth2 provider with a profile endpoint.

    Only constructed when both client id and secret are configured; the
    routes consult :attr:`AuthContext.oauth2_enabled` instead.
    """

    provider = "oauth2"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        authorize_url: str,
        token_url: str,
        profile_url: str,
        scope: str = "user.read",
        field_map: ProfileFieldMap = MICROSOFT_GRAPH_FIELDS,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.profile_url = profile_url
        self.scope = scope
        self.field_map = field_map
        self.timeout = timeout
        self._transport = transport

    def begin_login(
        self, callback_url: str, return_to: Optional[str] = None
    ) -> RedirectInstruction:
        login_state = LoginState(
            state=secrets.token_urlsafe(24),
            provider=self.provider,
            redirect_uri=callback_url,
            return_to=return_to,
        )
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": callback_url,
            "scope": self.scope,
            "state": login_state.state,
        }
        return RedirectInstruction(
            url=f"{self.authorize_url}?{urlencode(params)}",
            login_state=login_state,
        )

    async def complete_login(
        self,
        code: Optional[str],
        login_state: LoginState,
        state: Optional[str] = None,
    ) -> OAuth2Principal:
        """
        Exchange ``code`` for an access token and fetch the profile.

        Raises:
            AuthExchangeError: On state mismatch, a rejected code, profile
                fetch failure, or a profile without an id.
        """
        if login_state.provider != self.provider:
            raise AuthExchangeError("Login state belongs to another provider")
        if not state or not secrets.compare_digest(state, login_state.state):
            raise AuthExchangeError("Login state mismatch")
        if not code:
            raise AuthExchangeError("Missing authorization code")

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": login_state.redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": self.scope,
        }
        try:
            tokens = await request_tokens(
                self.token_url, data, self.timeout, self._transport
            )
            profile = await self._fetch_profile(tokens["access_token"])
        except (OAuthTokenError, httpx.HTTPError, ValueError) as exc:
            logger.warning(f"OAuth2 login failed: {exc}")
            raise AuthExchangeError("Authorization code exchange failed") from exc

        subject_id = self.field_map.extract(profile, "subject_id")
        if not subject_id:
            raise AuthExchangeError("Provider profile carried no id")

        return OAuth2Principal(
            subject_id=subject_id,
            email=self.field_map.extract(profile, "email"),
            given_name=self.field_map.extract(profile, "given_name"),
            family_name=self.field_map.extract(profile, "family_name"),
            avatar_url=self.field_map.extract(profile, "avatar_url"),
        )

    async def _fetch_profile(self, access_token: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            transport=self._transport, timeout=self.timeout
        ) as client:
            resp = await client.get(
                self.profile_url,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            resp.raise_for_status()
            profile = resp.json()
        if not isinstance(profile, dict):
            raise ValueError("Profile response is not a JSON object")
        return profile
