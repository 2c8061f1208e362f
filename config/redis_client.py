"""
config/redis_client.py
Shared redis.asyncio client. Backs the read-through caches, the
sign-out deny-list and the anonymous rate limiter in main.py.
"""

import json
from typing import Any, Optional
import redis.asyncio as aioredis

from config.settings import settings

# Set by init_redis() during app startup; None until then.
redis_client: Optional[aioredis.Redis] = None


async def init_redis() -> None:
    global redis_client
    client = aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )
    await client.ping()
    redis_client = client


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None


def get_redis() -> aioredis.Redis:
    """Request dependency. Tests override it with an in-memory fake."""
    if redis_client is None:
        raise RuntimeError("Redis is not connected; init_redis() runs in the app lifespan")
    return redis_client


class RedisCache:
    """JSON values under plain keys, always written with a TTL."""

    def __init__(self, client: aioredis.Redis):
        self.client = client

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.client.get(key)
        return json.loads(raw) if raw else None

    async def set(self, key: str, value: Any, ttl: int = settings.REDIS_CACHE_TTL) -> None:
        # default=str covers UUID, Decimal and datetime in response payloads
        await self.client.setex(key, ttl, json.dumps(value, default=str))

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    @staticmethod
    def _revoked_key(jti: str) -> str:
        return f"jwt_revoked:{jti}"

    async def revoke_token(self, jti: str, ttl_seconds: int) -> None:
        """Deny a token id until the token would have expired anyway."""
        await self.client.setex(self._revoked_key(jti), ttl_seconds, "1")

    async def is_token_revoked(self, jti: str) -> bool:
        return bool(await self.client.exists(self._revoked_key(jti)))
