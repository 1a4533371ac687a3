"""OIDC discovery document fetching with a time-bounded cache."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import httpx

from .errors import DiscoveryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    """The subset of ``.well-known/openid-configuration`` this app uses."""

    issuer: str
    client_id: str
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: Optional[str] = None
    end_session_endpoint: Optional[str] = None
    jwks_uri: Optional[str] = None


class DiscoveryCache:
    """
    Fetches and caches OIDC provider metadata.

    Constructed once at startup and injected into :class:`OIDCAdapter`.
    Entries expire after ``ttl_seconds`` and are refetched lazily on the
    next lookup. Two concurrent lookups after expiry may both refetch;
    the later write simply replaces the earlier one.

    Attributes:
        ttl_seconds: Cache lifetime per issuer (default: 1 hour).
        timeout: httpx timeout for the discovery request.
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout
        self._transport = transport
        self._clock = clock
        self._entries: Dict[Tuple[str, str], Tuple[ProviderConfig, float]] = {}

    async def get(self, issuer_url: str, client_id: str) -> ProviderConfig:
        """
        Return provider metadata, fetching it if absent or stale.

        Raises:
            DiscoveryError: If the issuer is unreachable or the document is
                malformed.
        """
        key = (issuer_url, client_id)
        cached = self._entries.get(key)
        if cached is not None:
            config, fetched_at = cached
            if self._clock() - fetched_at < self.ttl_seconds:
                return config

        config = await self._fetch(issuer_url, client_id)
        self._entries[key] = (config, self._clock())
        return config

    def invalidate(self) -> None:
        self._entries.clear()

    async def _fetch(self, issuer_url: str, client_id: str) -> ProviderConfig:
        discovery_url = f"{issuer_url.rstrip('/')}/.well-known/openid-configuration"
        logger.info(f"Fetching OIDC discovery document from {discovery_url}")

        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self.timeout
            ) as client:
                resp = await client.get(discovery_url)
                resp.raise_for_status()
                metadata = resp.json()
        except httpx.HTTPError as exc:
            logger.error(f"OIDC discovery failed for {issuer_url}: {exc}")
            raise DiscoveryError(f"Identity provider unreachable: {issuer_url}") from exc
        except ValueError as exc:
            logger.error(f"OIDC discovery returned non-JSON body for {issuer_url}")
            raise DiscoveryError("Identity provider returned malformed metadata") from exc

        if not isinstance(metadata, dict):
            raise DiscoveryError("Identity provider returned malformed metadata")

        authorization_endpoint = metadata.get("authorization_endpoint")
        token_endpoint = metadata.get("token_endpoint")
        if not authorization_endpoint or not token_endpoint:
            raise DiscoveryError(
                "Identity provider metadata is missing authorization or token endpoint"
            )

        return ProviderConfig(
            issuer=metadata.get("issuer", issuer_url),
            client_id=client_id,
            authorization_endpoint=authorization_endpoint,
            token_endpoint=token_endpoint,
            userinfo_endpoint=metadata.get("userinfo_endpoint"),
            end_session_endpoint=metadata.get("end_session_endpoint"),
            jwks_uri=metadata.get("jwks_uri"),
        )
