import json
from redis import asyncio as aioredis
from app.core.config import settings


class RedisManager:
    def __init__(self):
        self.redis = None

    @property
    def connected(self) -> bool:
        return self.redis is not None

    async def connect(self):
        """Connect to Redis (called on FastAPI startup when a cache is configured)."""
        if not settings.REDIS_URL:
            raise RuntimeError("REDIS_URL not configured")
        self.redis = await aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True
        )

    async def close(self):
        """Close Redis connection."""
        if self.redis:
            await self.redis.close()
            self.redis = None

    async def set_json(self, key: str, data, ttl_seconds: int):
        await self.redis.setex(key, ttl_seconds, json.dumps(data))

    async def get_json(self, key: str):
        data = await self.redis.get(key)
        if data:
            return json.loads(data)
        return None

redis_manager = RedisManager()
