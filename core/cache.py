import json
import logging
from typing import Any, Dict, Optional

import redis
import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class OrderCache:
    """
    Short-lived cache of the public order projection (the payment page polls it).
    Only ever a read shortcut: misses and Redis errors fall through to the DB.
    """

    def __init__(self, client: "aioredis.Redis", ttl_seconds: int = 5) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(order_id: str) -> str:
        return f"order:{order_id}"

    async def get(self, order_id: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.client.get(self.key(order_id))
        except redis.RedisError as e:
            logger.warning(f"⚠️ [Cache] get {order_id} failed: {e}")
            return None
        if not raw:
            return None
        return json.loads(raw)

    async def set(self, order_id: str, data: Dict[str, Any]) -> None:
        try:
            await self.client.set(self.key(order_id), json.dumps(data), ex=self.ttl_seconds)
        except redis.RedisError as e:
            logger.warning(f"⚠️ [Cache] set {order_id} failed: {e}")

    async def invalidate(self, order_id: str) -> None:
        try:
            await self.client.delete(self.key(order_id))
        except redis.RedisError as e:
            logger.warning(f"⚠️ [Cache] invalidate {order_id} failed: {e}")

    async def close(self) -> None:
        await self.client.aclose()


def build_order_cache(url: str, ttl_seconds: int = 5) -> Optional[OrderCache]:
    if not url:
        logger.info(" [Cache] REDIS_URL empty, order cache disabled")
        return None
    # decode_responses=True 讓拿出來的資料直接是字串
    client = aioredis.from_url(url, decode_responses=True)
    return OrderCache(client, ttl_seconds)
