"""Key-value store."""

from .redis_store import RedisStore

__all__ = ["RedisStore"]
