"""Guild-scoped read-through cache of open applications"""

import json
import logging
from dataclasses import asdict
from typing import Optional, List, Callable, Awaitable

import redis.asyncio as redis

from gatekeeper.utils.constants import CACHE_SETTINGS, REDIS_KEYS
from .types import OpenApplication

logger = logging.getLogger('Gatekeeper')

Loader = Callable[[], Awaitable[List[OpenApplication]]]

class OpenApplicationsCache:
    """Caches the open-applications list per guild in Redis.

    Entries are keyed by a per-guild generation counter. Every successful
    review mutation bumps the generation before returning, so a list loaded
    before the mutation committed is written under a generation nobody reads
    any more. The TTL only bounds staleness when an invalidation itself fails.
    """

    def __init__(self, redis_client: Optional[redis.Redis],
                 ttl: int = CACHE_SETTINGS['OPEN_APPS_TTL']):
        self.redis = redis_client
        self.ttl = ttl

    @staticmethod
    def key(guild_id: str, generation: int = 0) -> str:
        return REDIS_KEYS['OPEN_APPS'].format(guild_id=guild_id, generation=generation)

    @staticmethod
    def generation_key(guild_id: str) -> str:
        return REDIS_KEYS['OPEN_APPS_GENERATION'].format(guild_id=guild_id)

    async def generation(self, guild_id: str) -> int:
        value = await self.redis.get(self.generation_key(guild_id))
        return int(value) if value else 0

    async def get_or_load(self, guild_id: str, loader: Loader) -> List[OpenApplication]:
        """Return the cached list for guild_id, loading and storing it on a miss"""
        if self.redis is None:
            return await loader()

        try:
            generation = await self.generation(guild_id)
            key = self.key(guild_id, generation)
            cached = await self.redis.get(key)
        except redis.RedisError as e:
            logger.warning(f"Open applications cache read failed for guild {guild_id}: {e}")
            return await loader()

        if cached:
            try:
                return [OpenApplication(**item) for item in json.loads(cached)]
            except (ValueError, TypeError) as e:
                logger.warning(f"Discarding unreadable cache entry {key}: {e}")

        rows = await loader()

        try:
            await self.redis.set(key, json.dumps([asdict(row) for row in rows]), ex=self.ttl)
        except redis.RedisError as e:
            logger.warning(f"Open applications cache write failed for guild {guild_id}: {e}")

        return rows

    async def invalidate(self, guild_id: str) -> None:
        """Move guild_id to a new generation and drop the previous entry"""
        if self.redis is None:
            return
        try:
            generation = await self.redis.incr(self.generation_key(guild_id))
            await self.redis.delete(self.key(guild_id, generation - 1))
            logger.debug(f"Invalidated open applications cache for guild {guild_id} (generation {generation})")
        except redis.RedisError as e:
            # The row is already committed; the TTL caps how long this entry can be stale
            logger.error(f"Failed to invalidate open applications cache for guild {guild_id}: {e}")
