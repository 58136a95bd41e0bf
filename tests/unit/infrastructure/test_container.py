"""
Tests for container lifecycle: refresh token cleanup and shutdown.
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import update

from feralis_auth.domain.entities import RevocationReason
from feralis_auth.infrastructure.auth.models import RefreshToken, utc_now
from feralis_auth.infrastructure.container import AuthContainer
from tests.helpers import make_settings


def _container(fake_redis, engine, **session_overrides) -> AuthContainer:
    return AuthContainer(
        make_settings(**session_overrides), redis_client=fake_redis, engine=engine
    )


class TestRefreshTokenCleanup:
    """Test the configured retention and the periodic cleanup task."""

    async def _revoke_aged(self, container, account, family, age):
        tokens = await container.token_service.issue(account, f"session-{family}", family=family)
        await container.token_service.revoke(tokens.refresh_token, RevocationReason.LOGOUT)
        async with container.session_factory() as session, session.begin():
            await session.execute(
                update(RefreshToken)
                .where(RefreshToken.family == family)
                .values(revoked_at=utc_now() - age)
            )
        return tokens

    @pytest.mark.asyncio
    async def test_cleanup_uses_configured_retention(self, fake_redis, engine, user):
        container = _container(fake_redis, engine, refresh_retention_days=1)
        account = await container.users.find_by_id(user.id)
        stale = await self._revoke_aged(container, account, "fam-stale", timedelta(days=2))
        recent = await self._revoke_aged(container, account, "fam-recent", timedelta(hours=12))

        deleted = await container.cleanup_refresh_tokens()

        assert deleted == 1
        assert await container.token_service.lookup(stale.refresh_token) is None
        assert await container.token_service.lookup(recent.refresh_token) is not None

    @pytest.mark.asyncio
    async def test_zero_interval_disables_cleanup_task(self, fake_redis, engine):
        container = _container(fake_redis, engine, token_cleanup_interval=0)

        container.start_token_cleanup()

        assert container._cleanup_task is None

    @pytest.mark.asyncio
    async def test_cleanup_task_survives_failures_and_stops_on_close(self, fake_redis, engine):
        container = _container(fake_redis, engine, token_cleanup_interval=0.01)
        calls = []

        async def cleanup() -> int:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database unavailable")
            return 0

        container.cleanup_refresh_tokens = cleanup
        container.start_token_cleanup()
        task = container._cleanup_task
        for _ in range(200):
            if len(calls) >= 2:
                break
            await asyncio.sleep(0.01)

        assert len(calls) >= 2
        assert not task.done()

        await container.close()

        assert task.done()
        assert container._cleanup_task is None
