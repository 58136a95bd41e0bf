"""Global pytest configuration and fixtures."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from feralis_auth.application.config import AuthSettings
from feralis_auth.infrastructure.auth.models import User
from feralis_auth.infrastructure.cache import RedisStore
from feralis_auth.infrastructure.container import AuthContainer
from feralis_auth.infrastructure.database import (
    create_engine,
    create_schema,
    create_session_factory,
)
from tests.helpers import FakeRedis, create_test_user, make_settings


@pytest.fixture
def settings() -> AuthSettings:
    """Provides settings backed by in-memory stores."""
    return make_settings()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def store(fake_redis: FakeRedis) -> RedisStore:
    return RedisStore(fake_redis)  # type: ignore[arg-type]


@pytest_asyncio.fixture
async def engine(settings: AuthSettings) -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite database with the auth schema."""
    engine = create_engine(settings.database)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def container(
    settings: AuthSettings, fake_redis: FakeRedis, engine: AsyncEngine
) -> AuthContainer:
    """Fully wired container over SQLite and the in-memory Redis."""
    return AuthContainer(settings, redis_client=fake_redis, engine=engine)  # type: ignore[arg-type]


@pytest_asyncio.fixture
async def user(session_factory: async_sessionmaker[AsyncSession]) -> User:
    """An active account without MFA."""
    return await create_test_user(session_factory, email="ada@feralis.example.com")
