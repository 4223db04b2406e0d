from typing import Optional
import redis.asyncio as redis
from avatar_worker import config
from avatar_worker.utils import get_logger

logger = get_logger(__name__)


def create_redis_client(url: str = "", password: Optional[str] = None) -> redis.Redis:
    """Build an asyncio Redis client from config (connections are lazy)."""
    return redis.from_url(
        url or config.REDIS_URL,
        password=password or config.REDIS_PASSWORD,
        decode_responses=True,
    )


class RedisClient:
    def __init__(self, url: str = "", password: Optional[str] = None):
        self.url = url or config.REDIS_URL
        self.password = password
        self.client = None

    async def __aenter__(self) -> redis.Redis:
        logger.info(" Connecting to Redis...")
        self.client = create_redis_client(self.url, self.password)
        return self.client

    async def __aexit__(self, exc_type, exc, tb):
        if self.client:
            await self.client.aclose()
            logger.info(" Redis connection closed.")
