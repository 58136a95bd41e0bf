"""
Integration tests for complete authentication flows over HTTP.
"""

import httpx
import pyotp
import pytest
import pytest_asyncio

from feralis_auth.infrastructure.auth.app import create_app
from feralis_auth.infrastructure.container import AuthContainer
from tests.helpers import NEW_PASSWORD, TEST_PASSWORD, create_test_user, make_settings

pytestmark = pytest.mark.integration


@pytest_asyncio.fixture
async def client(container):
    app = create_app(container=container)
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client


async def _login(client, email="ada@feralis.example.com", password=TEST_PASSWORD) -> dict:
    response = await client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


def _bearer(body: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {body['accessToken']}"}


class TestLoginFlow:
    """Test login, refresh and logout."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_login_response_shape(self, client, user):
        body = await _login(client)

        assert body["requiresMFA"] is False
        assert body["tokenType"] == "Bearer"
        assert body["expiresIn"] == 900
        assert "mfaChallengeToken" not in body
        assert body["accessToken"] and body["refreshToken"]

    @pytest.mark.asyncio
    async def test_bad_credentials(self, client, user):
        wrong = await client.post(
            "/auth/login",
            json={"email": "ada@feralis.example.com", "password": "Wrong!Password-00"},
        )
        unknown = await client.post(
            "/auth/login", json={"email": "nobody@feralis.example.com", "password": TEST_PASSWORD}
        )

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {
            "detail": "Invalid credentials",
            "code": "INVALID_CREDENTIALS",
        }

    @pytest.mark.asyncio
    async def test_invalid_email_is_rejected_by_validation(self, client):
        response = await client.post(
            "/auth/login", json={"email": "not-an-email", "password": TEST_PASSWORD}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_me(self, client, user):
        body = await _login(client)

        response = await client.get("/auth/me", headers=_bearer(body))

        assert response.status_code == 200
        me = response.json()
        assert me["userId"] == user.id
        assert me["email"] == "ada@feralis.example.com"
        assert me["mfaVerified"] is False

    @pytest.mark.asyncio
    async def test_refresh_and_reuse(self, client, user):
        body = await _login(client)

        refreshed = await client.post("/auth/refresh", json={"refreshToken": body["refreshToken"]})
        assert refreshed.status_code == 200
        assert refreshed.json()["refreshToken"] != body["refreshToken"]

        replay = await client.post("/auth/refresh", json={"refreshToken": body["refreshToken"]})
        assert replay.status_code == 401
        assert replay.json()["code"] == "REAUTHENTICATE"

        me = await client.get("/auth/me", headers=_bearer(refreshed.json()))
        assert me.status_code == 401
        assert me.json()["code"] == "SESSION_EXPIRED"

    @pytest.mark.asyncio
    async def test_refresh_without_token(self, client):
        response = await client.post("/auth/refresh")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_logout(self, client, user):
        body = await _login(client)

        response = await client.post("/auth/logout", json={"refreshToken": body["refreshToken"]})

        assert response.status_code == 204
        assert (await client.get("/auth/me", headers=_bearer(body))).status_code == 401

    @pytest.mark.asyncio
    async def test_suspended_account(self, client, session_factory):
        from feralis_auth.domain.entities import AccountStatus

        account = await create_test_user(session_factory, status=AccountStatus.SUSPENDED)

        response = await client.post(
            "/auth/login", json={"email": account.email, "password": TEST_PASSWORD}
        )

        assert response.status_code == 403
        assert response.json()["code"] == "ACCOUNT_UNUSABLE"


class TestSessionEndpoints:
    """Test session listing and revocation."""

    @pytest.mark.asyncio
    async def test_list_and_revoke(self, client, user):
        first = await _login(client)
        second = await _login(client)

        listed = await client.get("/auth/sessions", headers=_bearer(first))
        assert listed.status_code == 200
        sessions = listed.json()
        assert len(sessions) == 2
        current = [s for s in sessions if s["current"]]
        other = [s for s in sessions if not s["current"]]
        assert len(current) == 1

        revoked = await client.delete(
            f"/auth/sessions/{other[0]['sessionId']}", headers=_bearer(first)
        )
        assert revoked.status_code == 204
        assert (await client.get("/auth/me", headers=_bearer(second))).status_code == 401

        missing = await client.delete(
            f"/auth/sessions/{other[0]['sessionId']}", headers=_bearer(first)
        )
        assert missing.status_code == 404


class TestMFAFlow:
    """Test MFA enrolment and MFA login over HTTP."""

    @pytest.mark.asyncio
    async def test_enrol_and_login_with_mfa(self, client, user):
        body = await _login(client)

        setup = await client.post("/auth/mfa/setup", headers=_bearer(body))
        assert setup.status_code == 200
        secret = setup.json()["secret"]
        assert len(setup.json()["backupCodes"]) == 10

        enabled = await client.post(
            "/auth/mfa/enable", json={"code": pyotp.TOTP(secret).now()}, headers=_bearer(body)
        )
        assert enabled.status_code == 204

        pending = await _login(client)
        assert pending["requiresMFA"] is True
        assert "accessToken" not in pending

        verified = await client.post(
            "/auth/mfa/verify",
            json={"challengeToken": pending["mfaChallengeToken"], "code": pyotp.TOTP(secret).now()},
        )
        assert verified.status_code == 200
        me = await client.get("/auth/me", headers=_bearer(verified.json()))
        assert me.json()["mfaVerified"] is True

    @pytest.mark.asyncio
    async def test_enable_with_wrong_code(self, client, user):
        body = await _login(client)
        await client.post("/auth/mfa/setup", headers=_bearer(body))

        response = await client.post(
            "/auth/mfa/enable", json={"code": "000000"}, headers=_bearer(body)
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_disable_requires_enabled_mfa(self, client, user):
        body = await _login(client)

        response = await client.post(
            "/auth/mfa/disable", json={"password": TEST_PASSWORD}, headers=_bearer(body)
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_backup_code_regeneration(self, client, session_factory):
        secret = pyotp.random_base32()
        account = await create_test_user(session_factory, mfa_secret=secret)
        pending = await _login(client, account.email)
        verified = await client.post(
            "/auth/mfa/verify",
            json={"challengeToken": pending["mfaChallengeToken"], "code": pyotp.TOTP(secret).now()},
        )

        response = await client.post(
            "/auth/mfa/backup-codes",
            json={"password": TEST_PASSWORD},
            headers=_bearer(verified.json()),
        )

        assert response.status_code == 200
        assert len(response.json()) == 10


class TestPasswordFlow:
    """Test password change and reset over HTTP."""

    @pytest.mark.asyncio
    async def test_change_password(self, client, user):
        body = await _login(client)

        response = await client.post(
            "/auth/change-password",
            json={"currentPassword": TEST_PASSWORD, "newPassword": NEW_PASSWORD},
            headers=_bearer(body),
        )

        assert response.status_code == 204
        assert (await client.get("/auth/me", headers=_bearer(body))).status_code == 401
        await _login(client, password=NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_weak_new_password(self, client, user):
        body = await _login(client)

        response = await client.post(
            "/auth/change-password",
            json={"currentPassword": TEST_PASSWORD, "newPassword": "password"},
            headers=_bearer(body),
        )

        assert response.status_code == 422
        error = response.json()
        assert error["code"] == "WEAK_PASSWORD"
        assert error["errors"]

    @pytest.mark.asyncio
    async def test_forgot_and_reset(self, settings, fake_redis, engine, user):
        delivered = []

        async def deliver(email: str, token: str) -> None:
            delivered.append((email, token))

        container = AuthContainer(
            settings, redis_client=fake_redis, engine=engine, password_reset_delivery=deliver
        )
        app = create_app(container=container)
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            unknown = await client.post(
                "/auth/password/forgot", json={"email": "nobody@feralis.example.com"}
            )
            known = await client.post(
                "/auth/password/forgot", json={"email": "ada@feralis.example.com"}
            )

            assert unknown.status_code == known.status_code == 202
            assert unknown.json() == known.json()
            assert [email for email, _ in delivered] == ["ada@feralis.example.com"]

            reset = await client.post(
                "/auth/password/reset",
                json={"token": delivered[0][1], "newPassword": NEW_PASSWORD},
            )
            assert reset.status_code == 204

            replay = await client.post(
                "/auth/password/reset",
                json={"token": delivered[0][1], "newPassword": NEW_PASSWORD},
            )
            assert replay.status_code == 401

            await _login(client, password=NEW_PASSWORD)


class TestRefreshCookie:
    """Test the HTTP-only refresh cookie."""

    @pytest_asyncio.fixture
    async def cookie_client(self, fake_redis, engine):
        settings = make_settings(refresh_cookie_enabled=True, cookie_secure=False)
        container = AuthContainer(settings, redis_client=fake_redis, engine=engine)
        app = create_app(container=container)
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            yield client

    @pytest.mark.asyncio
    async def test_cookie_refresh_and_logout(self, cookie_client, user):
        login = await cookie_client.post(
            "/auth/login", json={"email": "ada@feralis.example.com", "password": TEST_PASSWORD}
        )
        set_cookie = login.headers["set-cookie"]
        assert "refresh_token=" in set_cookie
        assert "HttpOnly" in set_cookie
        assert "Path=/auth" in set_cookie

        refreshed = await cookie_client.post("/auth/refresh")
        assert refreshed.status_code == 200
        assert cookie_client.cookies.get("refresh_token") == refreshed.json()["refreshToken"]

        logout = await cookie_client.post("/auth/logout")
        assert logout.status_code == 204
        assert "refresh_token" not in cookie_client.cookies
