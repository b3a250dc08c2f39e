"""
Resume cache.

Time-bounded key/value store for extracted resume text. An entry is
written once when an interview starts and read by every follow-up
generation until it expires.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from uuid import UUID

from redis.asyncio import Redis
from redis.exceptions import RedisError

from recruitment_interviews.config import Settings, get_settings
from recruitment_interviews.errors import InfrastructureError

logger = logging.getLogger(__name__)

KEY_PREFIX = "interview:resume:"


def resume_cache_key(application_id: UUID) -> str:
    """Build the cache key of an application's resume text."""
    return f"{KEY_PREFIX}{application_id}"


class ResumeCache(ABC):
    """Abstract base class for resume caches."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_millis: int) -> None:
        """
        Store ``value`` under ``key`` for ``ttl_millis`` milliseconds.

        Raises:
            InfrastructureError: If the value could not be stored.
        """
        ...

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """
        Get the value stored under ``key``.

        Returns:
            The value, or None if absent or expired.

        Raises:
            InfrastructureError: If the cache could not be read.
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        ...

    async def close(self) -> None:
        """Release cache resources."""
        return None


class RedisResumeCache(ResumeCache):
    """Resume cache stored in Redis with millisecond expiry."""

    def __init__(self, client: Redis | None = None, url: str | None = None) -> None:
        """
        Initialize the Redis cache.

        Args:
            client: Existing Redis client. Created from ``url`` if None.
            url: Redis URL (uses config if not provided).
        """
        self._client = client or Redis.from_url(
            url or get_settings().redis_url,
            decode_responses=True,
            health_check_interval=30,
        )

    async def set(self, key: str, value: str, ttl_millis: int) -> None:
        try:
            result = await self._client.set(key, value, px=ttl_millis)
        except RedisError as e:
            raise InfrastructureError(f"Failed to set {key} in Redis: {e}") from e
        if not result:
            raise InfrastructureError(f"Redis refused to store {key}")
        logger.debug(f"Cached {key} for {ttl_millis} ms")

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(key)
        except RedisError as e:
            raise InfrastructureError(f"Failed to read {key} from Redis: {e}") from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            raise InfrastructureError(f"Failed to delete {key} from Redis: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()


class InMemoryResumeCache(ResumeCache):
    """
    Process-local resume cache.

    Suitable for a single-process deployment and for tests; entries expire
    lazily on read.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """
        Initialize the in-memory cache.

        Args:
            clock: Monotonic clock in seconds.
        """
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    async def set(self, key: str, value: str, ttl_millis: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_millis / 1000.0)

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


def create_resume_cache(settings: Settings | None = None) -> ResumeCache:
    """Create the resume cache selected by configuration."""
    settings = settings or get_settings()
    if settings.resume_cache_backend == "memory":
        return InMemoryResumeCache()
    return RedisResumeCache(url=settings.redis_url)
