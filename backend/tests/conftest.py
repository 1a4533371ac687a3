"""
Pytest configuration and fixtures for the Alumni Community API tests.

Provides:
- Async SQLite in-memory database setup
- A fake identity provider served through ``httpx.MockTransport``
- FastAPI app with dependency overrides (database and auth context)
- AsyncClient for testing async endpoints
- ``sign_in`` helper that creates a session and sets the cookie
"""

import time
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from jose import jwt
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from auth.context import build_auth_context
from auth.cookies import sign_session_id
from auth.dependencies import get_auth_context
from auth.principal import OAuth2Principal
from config import Settings, settings
from database import Base, get_db
from main import app
from models import User
from models.user import STATUS_PENDING

ISSUER = "https://idp.test/oidc"
CLIENT_ID = "test-client"
IDP_SIGNING_KEY = "idp-test-key"
GRAPH_ME = "https://graph.microsoft.com/v1.0/me"
MS_TOKEN = "https://login.microsoftonline.com/common/oauth2/v2.0/token"


def make_id_token(claims: Dict[str, Any]) -> str:
    return jwt.encode(claims, IDP_SIGNING_KEY, algorithm="HS256")


class FakeIdentityProvider:
    """
    In-memory OIDC issuer plus a Microsoft-Graph-shaped OAuth2 provider.

    Codes are single use; refresh tokens listed in ``refresh_tokens`` are
    accepted and rotated, anything else is ``invalid_grant``.
    """

    def __init__(self):
        self.discovery_calls = 0
        self.discovery_down = False
        self.advertise_end_session = True
        self.codes: Dict[str, Dict[str, Any]] = {}
        self.refresh_tokens: Dict[str, str] = {}
        self.token_requests: list = []
        self.ms_codes: Dict[str, str] = {}
        self.graph_profile: Dict[str, Any] = {
            "id": "ms-user-1",
            "mail": "thandi@example.com",
            "givenName": "Thandi",
            "surname": "Nkosi",
        }

    # ── Scenario helpers ───────────────────────────────────────────────

    def issue_code(
        self,
        code: str,
        sub: str,
        nonce: Optional[str] = None,
        exp: Optional[int] = None,
        refresh_token: Optional[str] = "refresh-1",
        **claims,
    ) -> None:
        self.codes[code] = {
            "sub": sub,
            "nonce": nonce,
            "exp": exp if exp is not None else int(time.time()) + 3600,
            "refresh_token": refresh_token,
            "claims": claims,
        }
        if refresh_token:
            self.refresh_tokens[refresh_token] = sub

    # ── Transport ──────────────────────────────────────────────────────

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url).split("?")[0]
        if url == f"{ISSUER}/.well-known/openid-configuration":
            return self._discovery()
        if url == f"{ISSUER}/token":
            return self._oidc_token(dict(parse_qsl(request.content.decode())))
        if url == MS_TOKEN:
            return self._ms_token(dict(parse_qsl(request.content.decode())))
        if url == GRAPH_ME:
            if request.headers.get("authorization") != "Bearer ms-access":
                return httpx.Response(401, json={"error": "InvalidAuthenticationToken"})
            return httpx.Response(200, json=self.graph_profile)
        return httpx.Response(404)

    def _discovery(self) -> httpx.Response:
        self.discovery_calls += 1
        if self.discovery_down:
            return httpx.Response(502, text="Bad Gateway")
        metadata = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/auth",
            "token_endpoint": f"{ISSUER}/token",
            "userinfo_endpoint": f"{ISSUER}/me",
            "jwks_uri": f"{ISSUER}/jwks",
        }
        if self.advertise_end_session:
            metadata["end_session_endpoint"] = f"{ISSUER}/session/end"
        return httpx.Response(200, json=metadata)

    def _oidc_token(self, form: Dict[str, str]) -> httpx.Response:
        self.token_requests.append(form)
        grant = form.get("grant_type")
        if grant == "authorization_code":
            issued = self.codes.pop(form.get("code"), None)
            if issued is None:
                return httpx.Response(400, json={"error": "invalid_grant"})
            id_claims = {
                "iss": ISSUER,
                "aud": CLIENT_ID,
                "sub": issued["sub"],
                "exp": issued["exp"],
                **issued["claims"],
            }
            if issued["nonce"]:
                id_claims["nonce"] = issued["nonce"]
            body = {
                "access_token": f"access-{issued['sub']}",
                "token_type": "Bearer",
                "expires_in": 3600,
                "id_token": make_id_token(id_claims),
            }
            if issued["refresh_token"]:
                body["refresh_token"] = issued["refresh_token"]
            return httpx.Response(200, json=body)

        if grant == "refresh_token":
            sub = self.refresh_tokens.pop(form.get("refresh_token"), None)
            if sub is None:
                return httpx.Response(400, json={"error": "invalid_grant"})
            rotated = f"{form['refresh_token']}-rotated"
            self.refresh_tokens[rotated] = sub
            return httpx.Response(
                200,
                json={
                    "access_token": f"access-{sub}-refreshed",
                    "refresh_token": rotated,
                    "expires_in": 3600,
                    "id_token": make_id_token(
                        {"iss": ISSUER, "sub": sub, "exp": int(time.time()) + 3600}
                    ),
                },
            )
        return httpx.Response(400, json={"error": "unsupported_grant_type"})

    def _ms_token(self, form: Dict[str, str]) -> httpx.Response:
        if form.get("code") != "ms-code":
            return httpx.Response(400, json={"error": "invalid_grant"})
        return httpx.Response(200, json={"access_token": "ms-access", "token_type": "Bearer"})


def make_settings(**overrides) -> Settings:
    values = dict(
        APP_DOMAINS="test",
        CALLBACK_SCHEME="http",
        OIDC_ISSUER_URL=ISSUER,
        OIDC_CLIENT_ID=CLIENT_ID,
        OIDC_CLIENT_SECRET=None,
        OAUTH2_CLIENT_ID=None,
        OAUTH2_CLIENT_SECRET=None,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def idp():
    return FakeIdentityProvider()


@pytest.fixture
def auth_context(idp):
    """Auth context with the Microsoft provider left unconfigured."""
    return build_auth_context(make_settings(), transport=httpx.MockTransport(idp.handler))


@pytest.fixture
def oauth2_auth_context(idp):
    """Auth context with both providers configured."""
    return build_auth_context(
        make_settings(OAUTH2_CLIENT_ID="ms-client", OAUTH2_CLIENT_SECRET="ms-secret"),
        transport=httpx.MockTransport(idp.handler),
    )


@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory database; yields a session factory bound to it."""
    # Create in-memory SQLite engine for testing
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        future=True,
    )

    # Create session factory for test database
    async_session = sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        future=True,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_session

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def _client_for(context, session_factory, monkeypatch):
    # Test traffic is plain http; Secure cookies would never be sent back
    monkeypatch.setattr(settings, "SESSION_COOKIE_SECURE", False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_auth_context] = lambda: context

    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://test")


@pytest_asyncio.fixture
async def async_client(auth_context, session_factory, monkeypatch):
    """
    AsyncClient pointing to the FastAPI app with an in-memory test database
    and the fake identity provider. Microsoft login is not configured.

    Yields:
        httpx.AsyncClient: Async HTTP client for making requests to the app.
    """
    client = await _client_for(auth_context, session_factory, monkeypatch)
    async with client:
        yield client

    # Cleanup
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def oauth2_client(oauth2_auth_context, session_factory, monkeypatch):
    """Like ``async_client`` but with Microsoft login configured."""
    client = await _client_for(oauth2_auth_context, session_factory, monkeypatch)
    async with client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def sign_in(auth_context, session_factory):
    """
    Return a coroutine that signs ``user_id`` in on a client.

    Creates the session through the Session Manager (which upserts the user
    as pending), then applies the requested status/admin flag directly.
    """

    async def _sign_in(
        client: AsyncClient,
        user_id: str,
        status: str = STATUS_PENDING,
        is_admin: bool = False,
        principal=None,
    ) -> str:
        principal = principal or OAuth2Principal(
            subject_id=user_id,
            email=f"{user_id}@example.com",
            given_name=user_id.capitalize(),
            family_name="Tester",
        )
        async with session_factory() as session:
            sid = await auth_context.sessions.create_session(session, principal)
            user = await session.get(User, user_id)
            user.status = status
            user.is_admin = is_admin
            await session.commit()
        client.cookies.set(settings.SESSION_COOKIE_NAME, sign_session_id(sid))
        return sid

    return _sign_in
