from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class StoreInterface(ABC):
    """Shared key-value store with TTL, list, hash and scan primitives.

    Plain values (``get``/``set``/``set_nx``) are JSON-encoded by the store.
    List elements are opaque strings: callers own their encoding so that a
    single corrupt element can be skipped without failing the whole read.
    """

    async def connect(self) -> None:
        """Open the underlying connection. Override as needed."""

    async def disconnect(self) -> None:
        """Close the underlying connection. Override as needed."""

    @abstractmethod
    async def get(self, key: str) -> Any | None: ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None: ...

    @abstractmethod
    async def set_nx(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Atomically set key only if it does not exist. Returns True if set."""
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool: ...

    @abstractmethod
    async def expire(self, key: str, ttl: int) -> bool: ...

    @abstractmethod
    async def rpush(self, key: str, value: str) -> int:
        """Append to the list at *key*, returning the new length."""
        ...

    @abstractmethod
    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        """Return list elements between *start* and *end* inclusive."""
        ...

    @abstractmethod
    async def llen(self, key: str) -> int: ...

    @abstractmethod
    async def pop_all(self, key: str) -> list[str]:
        """Atomically read and delete the whole list at *key*."""
        ...

    @abstractmethod
    async def hincrby(self, key: str, field: str, amount: int = 1) -> int: ...

    @abstractmethod
    async def hset(self, key: str, mapping: dict[str, str]) -> int:
        """Set several hash fields at once, returning how many were new."""
        ...

    @abstractmethod
    async def hgetall(self, key: str) -> dict[str, str]: ...

    @abstractmethod
    async def scan(self, pattern: str) -> list[str]:
        """Return every live key matching a glob-style *pattern*."""
        ...

    @abstractmethod
    async def health_check(self) -> bool: ...
