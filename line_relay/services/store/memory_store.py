from __future__ import annotations

import fnmatch
import json
import time
from typing import Any

from line_relay.services.store.interface import StoreInterface


class MemoryStore(StoreInterface):
    """In-memory store with TTL support for unit testing and local runs."""

    def __init__(self) -> None:
        # key -> (value, expiry_timestamp_or_none)
        self._data: dict[str, tuple[Any, float | None]] = {}

    def _live(self, key: str) -> Any | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expiry = entry
        if expiry is not None and time.monotonic() >= expiry:
            del self._data[key]
            return None
        return value

    def _expiry_of(self, key: str) -> float | None:
        entry = self._data.get(key)
        return entry[1] if entry else None

    async def get(self, key: str) -> Any | None:
        raw = self._live(key)
        if raw is None:
            return None
        if not isinstance(raw, str):
            raise TypeError(f"key {key!r} does not hold a plain value")
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expiry = time.monotonic() + ttl if ttl is not None else None
        self._data[key] = (json.dumps(value), expiry)

    async def set_nx(self, key: str, value: Any, ttl: int | None = None) -> bool:
        if self._live(key) is not None:
            return False
        await self.set(key, value, ttl=ttl)
        return True

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._live(key) is not None:
                del self._data[key]
                deleted += 1
        return deleted

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def expire(self, key: str, ttl: int) -> bool:
        value = self._live(key)
        if value is None:
            return False
        self._data[key] = (value, time.monotonic() + ttl)
        return True

    async def rpush(self, key: str, value: str) -> int:
        items = self._live(key)
        if items is None:
            items = []
            self._data[key] = (items, None)
        elif not isinstance(items, list):
            raise TypeError(f"key {key!r} does not hold a list")
        items.append(value)
        return len(items)

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        items = self._live(key)
        if items is None:
            return []
        if not isinstance(items, list):
            raise TypeError(f"key {key!r} does not hold a list")
        stop = None if end == -1 else end + 1
        return list(items[start:stop])

    async def llen(self, key: str) -> int:
        items = self._live(key)
        return len(items) if isinstance(items, list) else 0

    async def pop_all(self, key: str) -> list[str]:
        items = await self.lrange(key)
        self._data.pop(key, None)
        return items

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        fields = self._live(key)
        if fields is None:
            fields = {}
            self._data[key] = (fields, None)
        elif not isinstance(fields, dict):
            raise TypeError(f"key {key!r} does not hold a hash")
        fields[field] = int(fields.get(field, 0)) + amount
        return fields[field]

    async def hset(self, key: str, mapping: dict[str, str]) -> int:
        fields = self._live(key)
        if fields is None:
            fields = {}
            self._data[key] = (fields, None)
        elif not isinstance(fields, dict):
            raise TypeError(f"key {key!r} does not hold a hash")
        added = sum(1 for field in mapping if field not in fields)
        fields.update({field: str(value) for field, value in mapping.items()})
        return added

    async def hgetall(self, key: str) -> dict[str, str]:
        fields = self._live(key)
        if fields is None:
            return {}
        if not isinstance(fields, dict):
            raise TypeError(f"key {key!r} does not hold a hash")
        return {k: str(v) for k, v in fields.items()}

    async def scan(self, pattern: str) -> list[str]:
        return [k for k in list(self._data) if fnmatch.fnmatchcase(k, pattern) and self._live(k) is not None]

    async def health_check(self) -> bool:
        return True

    def ttl_remaining(self, key: str) -> float | None:
        """Seconds until *key* expires, or None when it has no expiry."""
        expiry = self._expiry_of(key)
        if expiry is None:
            return None
        return expiry - time.monotonic()
