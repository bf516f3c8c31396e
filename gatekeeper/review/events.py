"""Publishing committed status changes"""

import json
import logging
from typing import Optional, List, Dict, Any, Callable, Awaitable

import redis.asyncio as redis

from gatekeeper.utils.constants import REDIS_KEYS, REVIEW_SETTINGS
from .types import StatusChange

logger = logging.getLogger('Gatekeeper')

StatusListener = Callable[[StatusChange], Awaitable[None]]

class StatusNotifier:
    """Fans a committed StatusChange out to registered listeners.

    Runs after the transaction commits. A failing listener is logged and
    does not affect the result handed back to the moderator.
    """

    def __init__(self):
        self._listeners: List[StatusListener] = []

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def publish(self, change: StatusChange) -> None:
        for listener in list(self._listeners):
            try:
                await listener(change)
            except Exception as e:
                logger.error(
                    f"Status listener {getattr(listener, '__qualname__', listener)} failed "
                    f"for application {change.application_id}: {e}",
                    exc_info=True
                )

class RedisStatusFeed:
    """Keeps the latest status changes per guild in a Redis list, newest first"""

    def __init__(self, redis_client: redis.Redis,
                 max_length: int = REVIEW_SETTINGS['STATUS_FEED_LENGTH']):
        self.redis = redis_client
        self.max_length = max_length

    @staticmethod
    def key(guild_id: str) -> str:
        return REDIS_KEYS['STATUS_FEED'].format(guild_id=guild_id)

    async def __call__(self, change: StatusChange) -> None:
        key = self.key(change.guild_id)
        await self.redis.lpush(key, json.dumps(change.to_dict()))
        await self.redis.ltrim(key, 0, self.max_length - 1)

    async def recent(self, guild_id: str, limit: Optional[int] = 10) -> List[Dict[str, Any]]:
        """Latest changes for a guild, newest first"""
        end = -1 if limit is None else limit - 1
        entries = await self.redis.lrange(self.key(guild_id), 0, end)
        return [json.loads(entry) for entry in entries]
