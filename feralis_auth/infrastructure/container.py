"""
Dependency Injection Container - wiring for the authentication core.

Every service is built once from ``AuthSettings`` and handed its
collaborators through its constructor. Nothing here is global: the
application keeps one container on ``app.state``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from datetime import timedelta

import httpx
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncEngine

from feralis_auth.application.config import AuthSettings
from feralis_auth.infrastructure.auth.audit import AuthAuditLogger
from feralis_auth.infrastructure.auth.jwt_service import JWTService
from feralis_auth.infrastructure.auth.repositories import (
    SQLAlchemyBackupCodeRepository,
    SQLAlchemyRefreshTokenRepository,
    SQLAlchemyUserRepository,
)
from feralis_auth.infrastructure.auth.services import (
    AuthenticationService,
    MFAChallengeStore,
    MFAService,
    PasswordService,
    SessionStore,
    TokenService,
)
from feralis_auth.infrastructure.cache import RedisStore
from feralis_auth.infrastructure.database import (
    create_engine,
    create_schema,
    create_session_factory,
)

logger = logging.getLogger(__name__)


class AuthContainer:
    """
    Dependency Injection Container for the authentication core.

    Pass ``redis_client``, ``engine`` or ``http_client`` to substitute
    backing connections (tests use SQLite and an in-memory Redis).
    ``password_reset_delivery`` receives ``(email, token)`` for each reset
    request that matches a usable account.
    """

    def __init__(
        self,
        settings: AuthSettings,
        redis_client: redis.Redis | None = None,
        engine: AsyncEngine | None = None,
        http_client: httpx.AsyncClient | None = None,
        password_reset_delivery: Callable[[str, str], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize the container with configuration."""
        self.settings = settings
        self.password_reset_delivery = password_reset_delivery
        self._cleanup_task: asyncio.Task[None] | None = None

        # Infrastructure
        self.engine = engine or create_engine(settings.database)
        self.session_factory = create_session_factory(self.engine)
        if redis_client is not None:
            self.store = RedisStore(redis_client, key_prefix=settings.cache.key_prefix)
        else:
            self.store = RedisStore.from_settings(settings.cache)
        self.audit = AuthAuditLogger(self.session_factory)

        # Repositories
        self.users = SQLAlchemyUserRepository(self.session_factory)
        self.backup_codes = SQLAlchemyBackupCodeRepository(self.session_factory)
        self.refresh_tokens = SQLAlchemyRefreshTokenRepository(self.session_factory)

        # Services
        self.jwt_service = JWTService(settings.jwt)
        self.password_service = PasswordService(settings.password, http_client=http_client)
        self.token_service = TokenService(self.jwt_service, self.refresh_tokens, self.audit)
        self.session_store = SessionStore(self.store, default_ttl=settings.session.session_ttl)
        self.mfa_challenges = MFAChallengeStore(
            self.store, ttl_seconds=settings.session.mfa_challenge_ttl
        )
        self.mfa_service = MFAService(
            self.users, self.backup_codes, self.password_service, self.audit
        )
        self.authentication = AuthenticationService(
            user_repository=self.users,
            password_service=self.password_service,
            token_service=self.token_service,
            session_store=self.session_store,
            mfa_challenges=self.mfa_challenges,
            mfa_service=self.mfa_service,
            store=self.store,
            settings=settings.session,
            audit=self.audit,
        )

        logger.info("Authentication container initialized")

    @classmethod
    def from_env(cls) -> "AuthContainer":
        return cls(AuthSettings.from_env())

    async def initialize_schema(self) -> None:
        """Create tables from ORM metadata. Development and tests only."""
        await create_schema(self.engine)

    async def cleanup_refresh_tokens(self) -> int:
        """Delete expired refresh tokens and those revoked beyond the retention window."""
        retention = timedelta(days=self.settings.session.refresh_retention_days)
        return await self.token_service.cleanup_expired(retention)

    def start_token_cleanup(self) -> None:
        """Start the periodic refresh token cleanup; an interval of 0 disables it."""
        interval = self.settings.session.token_cleanup_interval
        if interval <= 0:
            return
        if self._cleanup_task and not self._cleanup_task.done():
            return

        self._cleanup_task = asyncio.create_task(self._token_cleanup_loop(interval))

    async def _token_cleanup_loop(self, interval: float) -> None:
        while True:
            try:
                await asyncio.sleep(interval)
                await self.cleanup_refresh_tokens()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Refresh token cleanup failed: {e}")

    async def close(self) -> None:
        """Stop background cleanup and release database and Redis connections."""
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._cleanup_task
        self._cleanup_task = None

        await self.store.close()
        await self.engine.dispose()
        logger.info("Authentication container closed")
