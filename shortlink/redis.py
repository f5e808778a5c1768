import logging
import redis.asyncio as redis
from .config import Settings
from typing import Optional

logger = logging.getLogger(__name__)


class RedisClient:
    def __init__(self):
        self.client: Optional[redis.Redis] = None

    async def connect(self, settings: Settings):
        self.client = redis.from_url(
            settings.REDIS_URL,
            username=settings.REDIS_USERNAME,
            password=settings.REDIS_PASSWORD,
            encoding="utf-8",
            decode_responses=True,
        )
        await self.client.ping()
        logger.info("Connected to redis")

    async def close(self):
        if self.client:
            await self.client.aclose()
            self.client = None

    def get_client(self) -> redis.Redis:
        if not self.client:
            raise redis.ConnectionError("redis client is not connected")
        return self.client


redis_client = RedisClient()
