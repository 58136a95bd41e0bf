"""
Session tracking on the key-value store.

Each session is a JSON blob under ``session:{user_id}:{session_id}`` with a
sliding TTL, indexed by the set ``user_sessions:{user_id}``. The index may
list ids whose blob has already expired; a missing blob always means the
session is gone, and such index entries are pruned when seen.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from feralis_auth.infrastructure.cache import RedisStore

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionStore:
    """Redis-backed sliding-window sessions."""

    def __init__(
        self,
        store: RedisStore,
        default_ttl: int = 12 * 3600,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store
        self.default_ttl = default_ttl
        self._clock = clock

    @staticmethod
    def session_key(user_id: str, session_id: str) -> str:
        return f"session:{user_id}:{session_id}"

    @staticmethod
    def index_key(user_id: str) -> str:
        return f"user_sessions:{user_id}"

    async def create(
        self,
        user_id: str,
        session_id: str,
        data: dict[str, Any] | None = None,
        ttl_seconds: int | None = None,
    ) -> dict[str, Any]:
        """
        Store a new session and add it to the user's index.

        ``createdAt`` is kept when the caller supplies it, so a session
        moved to a new id keeps its original creation time.
        """
        now = self._clock()
        record = dict(data or {})
        record.setdefault("createdAt", now)
        record["lastActivity"] = now

        await self.store.set_json(
            self.session_key(user_id, session_id), record, ttl_seconds or self.default_ttl
        )
        await self.store.sadd(self.index_key(user_id), session_id)
        logger.debug(f"Created session {session_id} for user {user_id}")
        return record

    async def get(self, user_id: str, session_id: str) -> dict[str, Any] | None:
        return await self.store.get_json(self.session_key(user_id, session_id))

    async def touch(self, user_id: str, session_id: str, ttl_seconds: int | None = None) -> bool:
        """
        Record activity and restart the TTL.

        The write only lands if the key still exists, so a session deleted
        between the read and the write stays deleted.

        Returns:
            False if the session no longer exists
        """
        key = self.session_key(user_id, session_id)
        record = await self.store.get_json(key)
        if record is None:
            return False

        record["lastActivity"] = self._clock()
        if not await self.store.replace_json(key, record, ttl_seconds or self.default_ttl):
            logger.debug(f"Session {session_id} for user {user_id} ended during touch")
            return False
        return True

    async def delete(self, user_id: str, session_id: str) -> None:
        await self.store.delete(self.session_key(user_id, session_id))
        await self.store.srem(self.index_key(user_id), session_id)
        logger.debug(f"Deleted session {session_id} for user {user_id}")

    async def delete_all(self, user_id: str) -> int:
        """Delete every session of a user together with the index."""
        session_ids = await self.store.smembers(self.index_key(user_id))
        deleted = await self.store.delete(
            *(self.session_key(user_id, session_id) for session_id in session_ids)
        )
        await self.store.delete(self.index_key(user_id))
        logger.info(f"Deleted {deleted} sessions for user {user_id}")
        return deleted

    async def list(self, user_id: str) -> list[dict[str, Any]]:
        """Live sessions of a user, newest activity first."""
        sessions: list[dict[str, Any]] = []
        stale: list[str] = []

        for session_id in await self.store.smembers(self.index_key(user_id)):
            record = await self.get(user_id, session_id)
            if record is None:
                stale.append(session_id)
                continue
            sessions.append({"sessionId": session_id, **record})

        if stale:
            await self.store.srem(self.index_key(user_id), *stale)
            logger.debug(f"Pruned {len(stale)} stale session index entries for user {user_id}")

        sessions.sort(key=lambda s: s.get("lastActivity", 0), reverse=True)
        return sessions
