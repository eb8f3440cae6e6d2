"""
SessionCache: cache-aside store for serialized conversation history.

The cache is strictly an optimization. Every operation absorbs cache-layer
failures (connection errors, timeouts, corrupt payloads) and reports them
through its return value instead of raising, so a missing or broken Redis
never changes the outcome of a request.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from redis.asyncio import Redis

from ..config.settings import AppSettings
from ..core.models import HistoryPayload

logger = logging.getLogger(__name__)


class CacheStatus(str, Enum):
    """Outcome of a cache lookup."""
    HIT = "hit"
    MISS = "miss"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class CacheLookup:
    """Result of ``SessionCache.get``."""

    status: CacheStatus
    history: HistoryPayload | None = None
    error: str | None = None

    @property
    def hit(self) -> bool:
        return self.status is CacheStatus.HIT


class SessionCache:
    """Redis-backed history cache keyed by conversation identifier."""

    def __init__(
        self,
        client: Redis | None,
        ttl_seconds: int = 3600,
        key_prefix: str = "conversation",
    ):
        """
        Args:
            client: Redis client; None disables caching (every get misses)
            ttl_seconds: Default entry lifetime
            key_prefix: Key namespace, keys look like ``{prefix}:{id}``
        """
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "SessionCache":
        config = settings.cache
        client = None
        if config.enabled:
            client = Redis.from_url(
                config.url,
                decode_responses=True,
                socket_timeout=config.socket_timeout,
                socket_connect_timeout=config.socket_timeout,
            )
        else:
            logger.info("History cache disabled, all reads go to the message log")
        return cls(client, ttl_seconds=config.ttl_seconds, key_prefix=config.key_prefix)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def key_for(self, conversation_id: str) -> str:
        return f"{self.key_prefix}:{conversation_id}"

    async def get(self, conversation_id: str) -> CacheLookup:
        """Look up cached history. Never raises."""
        if self.client is None:
            return CacheLookup(CacheStatus.MISS)

        key = self.key_for(conversation_id)
        try:
            raw = await self.client.get(key)
            if raw is None:
                logger.debug(f"Cache miss for {key}")
                return CacheLookup(CacheStatus.MISS)
            history = HistoryPayload.from_json(raw)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return CacheLookup(CacheStatus.UNAVAILABLE, error=str(e))

        logger.debug(f"Cache hit for {key} ({len(history.messages)} messages)")
        return CacheLookup(CacheStatus.HIT, history=history)

    async def put(
        self, conversation_id: str, history: HistoryPayload, ttl: int | None = None
    ) -> bool:
        """Store history with an expiry. Returns False if the write failed."""
        if self.client is None:
            return False

        key = self.key_for(conversation_id)
        try:
            await self.client.set(key, history.to_json(), ex=ttl or self.ttl_seconds)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False
        return True

    async def invalidate(self, conversation_id: str) -> bool:
        """Delete a cached entry. Returns False if the delete failed."""
        if self.client is None:
            return True

        key = self.key_for(conversation_id)
        try:
            await self.client.delete(key)
        except Exception as e:
            logger.warning(f"Cache invalidation failed for {key}: {e}")
            return False
        return True

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.debug(f"Cache ping failed: {e}")
            return False

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
