"""
Test suite for the login/logout endpoints and cookie signing.

Covers:
- Session and login-state cookie signing
- OIDC login → callback → session round trip
- Callback failures redirect back to /api/login
- Microsoft login availability and flow
- Logout
"""

import pytest
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from httpx import AsyncClient
from jose import JWTError
from sqlalchemy import func, select

from auth.cookies import (
    LoginState,
    read_login_state,
    read_session_id,
    safe_return_to,
    sign_login_state,
    sign_session_id,
)
from config import settings
from models import SessionRecord, User
from models.user import STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED


def _query(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


async def _start_login(client: AsyncClient, path: str = "/api/login") -> dict:
    response = await client.get(path)
    assert response.status_code == 302
    return _query(response.headers["location"])


# ──────────────────────────────────────────────────────────────────────────────
# COOKIE SIGNING TESTS
# ──────────────────────────────────────────────────────────────────────────────


class TestCookies:
    """Tests for signed session-id and login-state cookies."""

    def test_session_id_round_trip(self):
        """A signed session cookie yields the session id it wraps."""
        token = sign_session_id("abc123")
        assert read_session_id(token) == "abc123"

    def test_expired_session_cookie_rejected(self):
        token = sign_session_id("abc123", expires_delta=timedelta(seconds=-1))
        with pytest.raises(JWTError):
            read_session_id(token)

    def test_tampered_session_cookie_rejected(self):
        token = sign_session_id("abc123")
        tampered = token[:-4] + ("AAAA" if not token.endswith("AAAA") else "BBBB")
        with pytest.raises(JWTError):
            read_session_id(tampered)

    def test_login_state_is_not_a_session_cookie(self):
        """Cookie types are not interchangeable."""
        token = sign_login_state(
            LoginState(state="s", provider="oidc", redirect_uri="http://test/api/callback")
        )
        with pytest.raises(JWTError):
            read_session_id(token)

    def test_login_state_round_trip(self):
        state = LoginState(
            state="s1",
            provider="oidc",
            redirect_uri="http://test/api/callback",
            nonce="n1",
            code_verifier="v1",
            return_to="/events",
        )
        assert read_login_state(sign_login_state(state)) == state

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("/events", "/events"),
            ("//evil.example", None),
            ("https://evil.example/", None),
            ("", None),
            (None, None),
        ],
    )
    def test_safe_return_to(self, value, expected):
        assert safe_return_to(value) == expected


# ──────────────────────────────────────────────────────────────────────────────
# OIDC LOGIN FLOW TESTS
# ──────────────────────────────────────────────────────────────────────────────


class TestOIDCLoginFlow:
    """End-to-end OIDC login through the HTTP routes."""

    @pytest.mark.asyncio
    async def test_login_redirects_to_provider(self, async_client: AsyncClient):
        """GET /api/login redirects to the authorization endpoint with PKCE."""
        response = await async_client.get("/api/login")
        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith("https://idp.test/oidc/auth?")

        params = _query(location)
        assert params["client_id"] == "test-client"
        assert params["redirect_uri"] == "http://test/api/callback"
        assert params["scope"] == "openid email profile offline_access"
        assert params["prompt"] == "login consent"
        assert params["code_challenge_method"] == "S256"
        assert params["state"] and params["nonce"]
        assert settings.LOGIN_STATE_COOKIE_NAME in response.cookies

    @pytest.mark.asyncio
    async def test_callback_creates_pending_user_and_session(
        self, async_client: AsyncClient, idp, session_factory
    ):
        """A first login creates a pending user and a session cookie."""
        params = await _start_login(async_client)
        idp.issue_code("code-1", "sub-1", nonce=params["nonce"], email="ada@example.com",
                       first_name="Ada", last_name="Lovelace")

        response = await async_client.get(
            "/api/callback", params={"code": "code-1", "state": params["state"]}
        )
        assert response.status_code == 302
        assert response.headers["location"] == "/"
        assert settings.SESSION_COOKIE_NAME in response.cookies

        me = await async_client.get("/api/auth/user")
        assert me.status_code == 200
        data = me.json()
        assert data["id"] == "sub-1"
        assert data["email"] == "ada@example.com"
        assert data["first_name"] == "Ada"
        assert data["status"] == STATUS_PENDING
        assert data["is_admin"] is False

        async with session_factory() as db:
            assert await db.scalar(select(func.count(SessionRecord.sid))) == 1

    @pytest.mark.asyncio
    async def test_callback_honours_return_to(self, async_client: AsyncClient, idp):
        response = await async_client.get("/api/login", params={"returnTo": "/events"})
        params = _query(response.headers["location"])
        idp.issue_code("code-2", "sub-2", nonce=params["nonce"])

        response = await async_client.get(
            "/api/callback", params={"code": "code-2", "state": params["state"]}
        )
        assert response.headers["location"] == "/events"

    @pytest.mark.asyncio
    async def test_repeated_login_keeps_status_and_admin(
        self, async_client: AsyncClient, idp, session_factory
    ):
        """A second login updates display fields only."""
        params = await _start_login(async_client)
        idp.issue_code("c1", "sub-3", nonce=params["nonce"], first_name="Old")
        await async_client.get("/api/callback", params={"code": "c1", "state": params["state"]})

        async with session_factory() as db:
            user = await db.get(User, "sub-3")
            user.status = STATUS_APPROVED
            user.is_admin = True
            await db.commit()

        params = await _start_login(async_client)
        idp.issue_code("c2", "sub-3", nonce=params["nonce"], first_name="New")
        await async_client.get("/api/callback", params={"code": "c2", "state": params["state"]})

        async with session_factory() as db:
            assert await db.scalar(select(func.count(User.id))) == 1
            user = await db.get(User, "sub-3")
            assert user.first_name == "New"
            assert user.status == STATUS_APPROVED
            assert user.is_admin is True

    @pytest.mark.asyncio
    async def test_rejected_user_stays_rejected_after_login(
        self, async_client: AsyncClient, idp, session_factory
    ):
        async with session_factory() as db:
            db.add(User(id="sub-4", auth_provider="oidc", status=STATUS_REJECTED))
            await db.commit()

        params = await _start_login(async_client)
        idp.issue_code("c4", "sub-4", nonce=params["nonce"])
        await async_client.get("/api/callback", params={"code": "c4", "state": params["state"]})

        me = await async_client.get("/api/auth/user")
        assert me.json()["status"] == STATUS_REJECTED

    @pytest.mark.asyncio
    async def test_callback_state_mismatch_redirects_to_login(
        self, async_client: AsyncClient, idp
    ):
        params = await _start_login(async_client)
        idp.issue_code("c5", "sub-5", nonce=params["nonce"])

        response = await async_client.get(
            "/api/callback", params={"code": "c5", "state": "forged"}
        )
        assert response.status_code == 302
        assert response.headers["location"] == "/api/login"
        assert settings.SESSION_COOKIE_NAME not in response.cookies

    @pytest.mark.asyncio
    async def test_unreadable_token_expiry_redirects_to_login(
        self, async_client: AsyncClient, idp, session_factory
    ):
        """A provider sending a non-numeric exp is a failed login, not a crash."""
        params = await _start_login(async_client)
        idp.issue_code("c-exp", "sub-exp", nonce=params["nonce"], exp="soon")

        response = await async_client.get(
            "/api/callback", params={"code": "c-exp", "state": params["state"]}
        )
        assert response.status_code == 302
        assert response.headers["location"] == "/api/login"
        assert settings.SESSION_COOKIE_NAME not in response.cookies

        async with session_factory() as db:
            assert await db.scalar(select(func.count(SessionRecord.sid))) == 0

    @pytest.mark.asyncio
    async def test_replayed_code_redirects_to_login(self, async_client: AsyncClient, idp):
        """Authorization codes are single use."""
        params = await _start_login(async_client)
        idp.issue_code("c6", "sub-6", nonce=params["nonce"])
        first = await async_client.get(
            "/api/callback", params={"code": "c6", "state": params["state"]}
        )
        assert first.headers["location"] == "/"

        params = await _start_login(async_client)
        replay = await async_client.get(
            "/api/callback", params={"code": "c6", "state": params["state"]}
        )
        assert replay.headers["location"] == "/api/login"

    @pytest.mark.asyncio
    async def test_callback_without_login_state(self, async_client: AsyncClient):
        response = await async_client.get("/api/callback", params={"code": "x", "state": "y"})
        assert response.status_code == 302
        assert response.headers["location"] == "/api/login"

    @pytest.mark.asyncio
    async def test_provider_error_redirects_to_login(self, async_client: AsyncClient):
        params = await _start_login(async_client)
        response = await async_client.get(
            "/api/callback", params={"error": "access_denied", "state": params["state"]}
        )
        assert response.headers["location"] == "/api/login"

    @pytest.mark.asyncio
    async def test_login_unknown_domain_is_400(self, async_client: AsyncClient):
        """Hosts without a client registration get a JSON 400."""
        response = await async_client.get("/api/login", headers={"host": "evil.example"})
        assert response.status_code == 400
        assert "message" in response.json()

    @pytest.mark.asyncio
    async def test_login_discovery_failure_is_503(self, async_client: AsyncClient, idp):
        idp.discovery_down = True
        response = await async_client.get("/api/login")
        assert response.status_code == 503
        assert response.json()["message"]


# ──────────────────────────────────────────────────────────────────────────────
# MICROSOFT LOGIN TESTS
# ──────────────────────────────────────────────────────────────────────────────


class TestMicrosoftLogin:
    """Optional OAuth2/profile provider."""

    @pytest.mark.asyncio
    async def test_methods_reports_microsoft_disabled(self, async_client: AsyncClient):
        response = await async_client.get("/api/auth/methods")
        assert response.status_code == 200
        assert response.json() == {"oidc": True, "microsoft": False}

    @pytest.mark.asyncio
    async def test_unconfigured_routes_return_503(self, async_client: AsyncClient):
        for path in ("/api/auth/microsoft", "/api/auth/microsoft/callback"):
            response = await async_client.get(path)
            assert response.status_code == 503
            assert response.json() == {"message": "Microsoft authentication not configured"}

    @pytest.mark.asyncio
    async def test_methods_reports_microsoft_enabled(self, oauth2_client: AsyncClient):
        response = await oauth2_client.get("/api/auth/methods")
        assert response.json() == {"oidc": True, "microsoft": True}

    @pytest.mark.asyncio
    async def test_microsoft_login_round_trip(self, oauth2_client: AsyncClient):
        """Profile fields are mapped from Graph names onto the user row."""
        params = await _start_login(oauth2_client, "/api/auth/microsoft")
        assert params["scope"] == "user.read"
        assert params["redirect_uri"] == "http://test/api/auth/microsoft/callback"

        response = await oauth2_client.get(
            "/api/auth/microsoft/callback",
            params={"code": "ms-code", "state": params["state"]},
        )
        assert response.status_code == 302
        assert response.headers["location"] == "/"

        me = await oauth2_client.get("/api/auth/user")
        data = me.json()
        assert data["id"] == "ms-user-1"
        assert data["auth_provider"] == "oauth2"
        assert data["email"] == "thandi@example.com"
        assert data["first_name"] == "Thandi"
        assert data["last_name"] == "Nkosi"
        assert data["status"] == STATUS_PENDING

    @pytest.mark.asyncio
    async def test_microsoft_bad_code_redirects_to_login(self, oauth2_client: AsyncClient):
        params = await _start_login(oauth2_client, "/api/auth/microsoft")
        response = await oauth2_client.get(
            "/api/auth/microsoft/callback",
            params={"code": "wrong", "state": params["state"]},
        )
        assert response.headers["location"] == "/api/login"


# ──────────────────────────────────────────────────────────────────────────────
# LOGOUT / CURRENT USER TESTS
# ──────────────────────────────────────────────────────────────────────────────


class TestLogout:
    """Session teardown."""

    @pytest.mark.asyncio
    async def test_current_user_requires_session(self, async_client: AsyncClient):
        response = await async_client.get("/api/auth/user")
        assert response.status_code == 401
        assert response.json() == {"message": "Unauthorized"}

    @pytest.mark.asyncio
    async def test_forged_cookie_is_unauthenticated(self, async_client: AsyncClient):
        async_client.cookies.set(settings.SESSION_COOKIE_NAME, "not-a-token")
        response = await async_client.get("/api/auth/user")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_oauth2_logout_goes_home(
        self, async_client: AsyncClient, sign_in, session_factory
    ):
        await sign_in(async_client, "member")
        response = await async_client.get("/api/logout")
        assert response.status_code == 302
        assert response.headers["location"] == "http://test"

        async with session_factory() as db:
            assert await db.scalar(select(func.count(SessionRecord.sid))) == 0

        assert (await async_client.get("/api/auth/user")).status_code == 401

    @pytest.mark.asyncio
    async def test_oidc_logout_goes_to_end_session(self, async_client: AsyncClient, idp):
        params = await _start_login(async_client)
        idp.issue_code("c7", "sub-7", nonce=params["nonce"])
        await async_client.get("/api/callback", params={"code": "c7", "state": params["state"]})

        response = await async_client.get("/api/logout")
        location = response.headers["location"]
        assert location.startswith("https://idp.test/oidc/session/end?")
        assert _query(location)["post_logout_redirect_uri"] == "http://test"

    @pytest.mark.asyncio
    async def test_logout_without_session(self, async_client: AsyncClient):
        response = await async_client.get("/api/logout")
        assert response.status_code == 302
        assert response.headers["location"] == "http://test"
