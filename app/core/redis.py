"""Redis connection and utilities"""
import logging
from typing import Optional
import redis.asyncio as aioredis
from app.core.config import settings

logger = logging.getLogger(__name__)

BLOCKLIST_CHANNEL = "waf:blocklist_changed"
LATEST_ANALYSIS_KEY = "waf:threat:analysis"
LATEST_INSIGHTS_KEY = "waf:threat:insights"


class RedisClient:
    """Redis client wrapper; every call is a no-op until connected"""

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL.replace("/0", f"/{settings.REDIS_CACHE_DB}")
        self.redis: Optional[aioredis.Redis] = None

    async def connect(self):
        """Connect to Redis"""
        self.redis = aioredis.from_url(
            self.url,
            encoding="utf-8",
            decode_responses=True
        )

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    async def get(self, key: str) -> Optional[str]:
        """Get value from Redis"""
        if not self.redis:
            return None
        return await self.redis.get(key)

    async def set(self, key: str, value: str, expire: Optional[int] = None):
        """Set value in Redis"""
        if not self.redis:
            return
        await self.redis.set(key, value, ex=expire)

    async def publish(self, channel: str, message: str):
        """Publish message to channel"""
        if not self.redis:
            return
        await self.redis.publish(channel, message)

    async def publish_blocklist_changed(self):
        """Notify external observers; delivery is best effort"""
        try:
            await self.publish(BLOCKLIST_CHANNEL, "changed")
        except Exception as e:
            logger.warning(f"Failed to publish blocklist change: {e}")


redis_client = RedisClient()
