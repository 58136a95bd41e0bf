"""
Redis key-value store used for sessions, MFA challenges and reset tokens.

Thin async wrapper over ``redis.asyncio`` that adds JSON helpers, an
optional key prefix, and translates Redis failures into
``ServiceUnavailableError``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from feralis_auth.application.config import CacheSettings
from feralis_auth.domain.exceptions import ServiceUnavailableError

logger = logging.getLogger(__name__)


class RedisStore:
    """Async key-value store over a shared Redis connection pool."""

    def __init__(self, client: redis.Redis, key_prefix: str = "") -> None:
        """
        Initialize the store.

        Args:
            client: Redis client created with ``decode_responses=True``
            key_prefix: Prefix prepended to every key
        """
        self.client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> "RedisStore":
        """Create a store with a client built from cache settings."""
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.socket_timeout,
        )
        return cls(client, key_prefix=settings.key_prefix)

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self.client.aclose()
        logger.info("Redis connections closed")

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncGenerator[None, None]:
        try:
            yield
        except RedisError as e:
            logger.error(f"Redis error during {operation}: {e}")
            raise ServiceUnavailableError(cause=e) from e

    # Basic operations

    async def get(self, key: str) -> str | None:
        async with self._guard("get"):
            return await self.client.get(self._key(key))

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        async with self._guard("set"):
            if ttl_seconds:
                await self.client.setex(self._key(key), ttl_seconds, value)
            else:
                await self.client.set(self._key(key), value)

    async def replace(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Overwrite an existing key (SET XX); returns False if the key is gone."""
        async with self._guard("replace"):
            return bool(await self.client.set(self._key(key), value, ex=ttl_seconds, xx=True))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        async with self._guard("delete"):
            return int(await self.client.delete(*(self._key(key) for key in keys)))

    async def exists(self, key: str) -> bool:
        async with self._guard("exists"):
            return bool(await self.client.exists(self._key(key)))

    async def expire(self, key: str, ttl_seconds: int) -> None:
        async with self._guard("expire"):
            await self.client.expire(self._key(key), ttl_seconds)

    async def ttl(self, key: str) -> int:
        async with self._guard("ttl"):
            return int(await self.client.ttl(self._key(key)))

    # JSON operations

    async def get_json(self, key: str) -> dict[str, Any] | None:
        """Read a JSON object; corrupt or non-object values read as missing."""
        value = await self.get(key)
        if not value:
            return None
        try:
            data = json.loads(value)
        except json.JSONDecodeError:
            logger.warning(f"Discarding corrupt JSON value at {key}")
            return None
        return data if isinstance(data, dict) else None

    async def set_json(
        self, key: str, value: dict[str, Any], ttl_seconds: int | None = None
    ) -> None:
        await self.set(key, json.dumps(value), ttl_seconds)

    async def replace_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> bool:
        return await self.replace(key, json.dumps(value), ttl_seconds)

    # Set operations

    async def sadd(self, key: str, *members: str) -> None:
        async with self._guard("sadd"):
            await self.client.sadd(self._key(key), *members)

    async def srem(self, key: str, *members: str) -> None:
        if not members:
            return
        async with self._guard("srem"):
            await self.client.srem(self._key(key), *members)

    async def smembers(self, key: str) -> set[str]:
        async with self._guard("smembers"):
            return set(await self.client.smembers(self._key(key)))
