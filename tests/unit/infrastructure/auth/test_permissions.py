"""
Tests for capability requirements.
"""

import httpx
import pytest
from fastapi import Depends, FastAPI

from feralis_auth.domain.exceptions import PermissionDeniedError
from feralis_auth.infrastructure.auth.endpoints import register_exception_handlers
from feralis_auth.infrastructure.auth.permissions import (
    CapabilityRequirement,
    RequireCapabilities,
    parse_capability,
)
from feralis_auth.infrastructure.auth.types import AuthenticatedPrincipal
from tests.helpers import TEST_PASSWORD, create_test_user


def _principal(permissions=(), roles=()) -> AuthenticatedPrincipal:
    return AuthenticatedPrincipal(
        user_id="u1",
        email="u1@feralis.example.com",
        organization_id="org",
        session_id="s1",
        roles=list(roles),
        permissions=set(permissions),
    )


class TestCapabilityRequirement:
    """Test requirement evaluation."""

    def test_all_of(self):
        requirement = CapabilityRequirement(all_of=frozenset({"orders:read", "orders:write"}))

        assert requirement.is_satisfied_by(_principal({"orders:read", "orders:write"}))
        assert requirement.missing(_principal({"orders:read"})) == ["orders:write"]

    def test_any_of(self):
        requirement = CapabilityRequirement(any_of=frozenset({"reports:read", "reports:admin"}))

        assert requirement.is_satisfied_by(_principal({"reports:admin"}))
        assert requirement.missing(_principal()) == ["reports:admin or reports:read"]

    def test_empty_requirement(self):
        assert CapabilityRequirement().is_satisfied_by(_principal())

    def test_admin_role_bypasses(self):
        requirement = CapabilityRequirement(all_of=frozenset({"orders:delete"}))

        assert requirement.is_satisfied_by(_principal(roles=["admin"]))

    @pytest.mark.parametrize("capability", ["orders", ":read", "orders:", ""])
    def test_malformed_capability(self, capability):
        with pytest.raises(ValueError):
            parse_capability(capability)
        with pytest.raises(ValueError):
            CapabilityRequirement(all_of=frozenset({capability}))

    def test_parse_capability(self):
        assert parse_capability("orders:read") == ("orders", "read")


class TestRequireCapabilities:
    """Test the route dependency end to end."""

    @pytest.fixture
    def app(self, container):
        app = FastAPI()
        app.state.auth_container = container
        register_exception_handlers(app)

        @app.get("/orders", dependencies=[Depends(RequireCapabilities("orders:read"))])
        async def list_orders():
            return {"orders": []}

        @app.delete(
            "/orders",
            dependencies=[Depends(RequireCapabilities(any_of=["orders:delete", "orders:admin"]))],
        )
        async def delete_orders():
            return {"deleted": True}

        return app

    async def _bearer(self, container, session_factory, **kwargs) -> dict[str, str]:
        account = await create_test_user(session_factory, **kwargs)
        result = await container.authentication.login(account.email, TEST_PASSWORD)
        return {"Authorization": f"Bearer {result.tokens.access_token}"}

    @pytest.mark.asyncio
    async def test_granted(self, app, container, session_factory):
        headers = await self._bearer(container, session_factory, permissions=["orders:read"])

        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.get("/orders", headers=headers)

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_denied(self, app, container, session_factory):
        headers = await self._bearer(container, session_factory, permissions=["orders:read"])

        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.delete("/orders", headers=headers)

        assert response.status_code == 403
        assert response.json()["code"] == PermissionDeniedError.code

    @pytest.mark.asyncio
    async def test_admin(self, app, container, session_factory):
        headers = await self._bearer(container, session_factory, roles=["admin"])

        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.delete("/orders", headers=headers)

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_unauthenticated(self, app):
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.get("/orders")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
