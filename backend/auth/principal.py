"""
Normalized login identity.

A :data:`Principal` is a discriminated union over the two identity-provider
protocols. Only the OIDC variant carries token bookkeeping; the OAuth2
profile variant has no refresh/expiry concept at all.
"""

import time
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class _PrincipalFields(BaseModel):
    subject_id: str
    email: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    avatar_url: Optional[str] = None


class OIDCPrincipal(_PrincipalFields):
    provider: Literal["oidc"] = "oidc"
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None  # epoch seconds

    def is_expired(self, now: Optional[float] = None) -> bool:
        """True once the access token's ``expires_at`` has passed."""
        if self.expires_at is None:
            return True
        current = int(now if now is not None else time.time())
        return current > self.expires_at


class OAuth2Principal(_PrincipalFields):
    provider: Literal["oauth2"] = "oauth2"


Principal = Annotated[
    Union[OIDCPrincipal, OAuth2Principal], Field(discriminator="provider")
]

_principal_adapter = TypeAdapter(Principal)


class TokenSet(BaseModel):
    """Result of a refresh-token grant."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: int


def principal_from_dict(data: dict) -> Union[OIDCPrincipal, OAuth2Principal]:
    """Rebuild a principal from its session-payload form."""
    return _principal_adapter.validate_python(data)


def principal_to_dict(principal: Union[OIDCPrincipal, OAuth2Principal]) -> dict:
    return principal.model_dump(mode="json")
