"""Redis-backed store implementation using redis-py's asyncio client."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import redis.asyncio as aioredis

from line_relay.services.secrets.interface import SecretsInterface
from line_relay.services.store.interface import StoreInterface

_SCAN_COUNT = 100


class RedisStore(StoreInterface):
    def __init__(self, secrets: SecretsInterface) -> None:
        self._url = secrets.get_or_default("STORE_REDIS_URL", "redis://localhost:6379/0")
        self._client: aioredis.Redis | None = None

    async def connect(self) -> None:
        import redis.asyncio as aioredis

        self._client = aioredis.Redis.from_url(self._url, decode_responses=True)

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _ensure_connected(self) -> aioredis.Redis:
        if self._client is None:
            await self.connect()
        return self._client  # type: ignore[return-value]

    async def get(self, key: str) -> Any | None:
        raw = await (await self._ensure_connected()).get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        raw = json.dumps(value)
        client = await self._ensure_connected()
        if ttl is not None:
            await client.setex(key, ttl, raw)
        else:
            await client.set(key, raw)

    async def set_nx(self, key: str, value: Any, ttl: int | None = None) -> bool:
        raw = json.dumps(value)
        client = await self._ensure_connected()
        return bool(await client.set(key, raw, nx=True, ex=ttl))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await (await self._ensure_connected()).delete(*keys)

    async def exists(self, key: str) -> bool:
        return await (await self._ensure_connected()).exists(key) > 0

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await (await self._ensure_connected()).expire(key, ttl))

    async def rpush(self, key: str, value: str) -> int:
        return await (await self._ensure_connected()).rpush(key, value)

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        return await (await self._ensure_connected()).lrange(key, start, end)

    async def llen(self, key: str) -> int:
        return await (await self._ensure_connected()).llen(key)

    async def pop_all(self, key: str) -> list[str]:
        """LRANGE + DEL inside MULTI/EXEC so no concurrent RPUSH is lost."""
        client = await self._ensure_connected()
        async with client.pipeline(transaction=True) as pipe:
            pipe.lrange(key, 0, -1)
            pipe.delete(key)
            items, _ = await pipe.execute()
        return items

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        return await (await self._ensure_connected()).hincrby(key, field, amount)

    async def hset(self, key: str, mapping: dict[str, str]) -> int:
        return await (await self._ensure_connected()).hset(key, mapping=mapping)

    async def hgetall(self, key: str) -> dict[str, str]:
        return await (await self._ensure_connected()).hgetall(key)

    async def scan(self, pattern: str) -> list[str]:
        client = await self._ensure_connected()
        return [key async for key in client.scan_iter(match=pattern, count=_SCAN_COUNT)]

    async def health_check(self) -> bool:
        try:
            return bool(await (await self._ensure_connected()).ping())
        except Exception:
            return False
