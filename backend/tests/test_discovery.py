"""Tests for the OIDC discovery cache."""

import httpx
import pytest

from auth.discovery import DiscoveryCache
from auth.errors import DiscoveryError

from conftest import ISSUER


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _cache(idp, clock=None, ttl=3600):
    return DiscoveryCache(
        ttl_seconds=ttl,
        transport=httpx.MockTransport(idp.handler),
        clock=clock or FakeClock(),
    )


class TestDiscoveryCache:

    @pytest.mark.asyncio
    async def test_fetches_metadata(self, idp):
        config = await _cache(idp).get(ISSUER, "client")
        assert config.authorization_endpoint == f"{ISSUER}/auth"
        assert config.token_endpoint == f"{ISSUER}/token"
        assert config.end_session_endpoint == f"{ISSUER}/session/end"
        assert config.client_id == "client"

    @pytest.mark.asyncio
    async def test_cached_within_ttl(self, idp):
        clock = FakeClock()
        cache = _cache(idp, clock)
        await cache.get(ISSUER, "client")
        clock.now += 3599
        await cache.get(ISSUER, "client")
        assert idp.discovery_calls == 1

    @pytest.mark.asyncio
    async def test_refetched_after_ttl(self, idp):
        clock = FakeClock()
        cache = _cache(idp, clock)
        await cache.get(ISSUER, "client")
        clock.now += 3600
        await cache.get(ISSUER, "client")
        assert idp.discovery_calls == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(self, idp):
        cache = _cache(idp)
        await cache.get(ISSUER, "client")
        cache.invalidate()
        await cache.get(ISSUER, "client")
        assert idp.discovery_calls == 2

    @pytest.mark.asyncio
    async def test_http_error_raises_discovery_error(self, idp):
        idp.discovery_down = True
        with pytest.raises(DiscoveryError):
            await _cache(idp).get(ISSUER, "client")

    @pytest.mark.asyncio
    async def test_unreachable_issuer(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        cache = DiscoveryCache(transport=httpx.MockTransport(refuse))
        with pytest.raises(DiscoveryError):
            await cache.get(ISSUER, "client")

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        cache = DiscoveryCache(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>"))
        )
        with pytest.raises(DiscoveryError):
            await cache.get(ISSUER, "client")

    @pytest.mark.asyncio
    async def test_missing_endpoints(self):
        cache = DiscoveryCache(
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, json={"issuer": ISSUER})
            )
        )
        with pytest.raises(DiscoveryError):
            await cache.get(ISSUER, "client")

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self, idp):
        cache = _cache(idp)
        idp.discovery_down = True
        with pytest.raises(DiscoveryError):
            await cache.get(ISSUER, "client")
        idp.discovery_down = False
        config = await cache.get(ISSUER, "client")
        assert config.token_endpoint == f"{ISSUER}/token"
