"""Conftest for integration tests: a connected RedisStore per test.

Each test gets its own Redis database flushed before and after use, so
key scans in one test never see another test's data.
"""

from __future__ import annotations

import pytest

from line_relay.services.secrets.env_secrets import EnvSecrets
from line_relay.services.store.redis_store import RedisStore


@pytest.fixture
async def redis_store(redis_url: str):
    store = RedisStore(EnvSecrets(overrides={"STORE_REDIS_URL": redis_url}))
    await store.connect()
    client = await store._ensure_connected()
    await client.flushdb()
    yield store
    await client.flushdb()
    await store.disconnect()
