import time
from unittest.mock import patch

import pytest

from line_relay.services.store.memory_store import MemoryStore


async def test_get_set_roundtrip():
    store = MemoryStore()
    await store.set("key", {"a": 1})
    assert await store.get("key") == {"a": 1}


async def test_get_returns_none_for_missing():
    store = MemoryStore()
    assert await store.get("nonexistent") is None


async def test_ttl_expiry():
    store = MemoryStore()
    start = time.monotonic()
    await store.set("key", "value", ttl=1)
    # Simulate time passing beyond TTL
    with patch("line_relay.services.store.memory_store.time") as mock_time:
        mock_time.monotonic.return_value = start + 2
        assert await store.get("key") is None


async def test_ttl_not_expired():
    store = MemoryStore()
    await store.set("key", "value", ttl=60)
    assert await store.get("key") == "value"


async def test_set_nx_only_sets_once():
    store = MemoryStore()
    assert await store.set_nx("k", "first", ttl=60) is True
    assert await store.set_nx("k", "second", ttl=60) is False
    assert await store.get("k") == "first"


async def test_set_nx_succeeds_after_expiry():
    store = MemoryStore()
    start = time.monotonic()
    await store.set_nx("k", "first", ttl=10)
    with patch("line_relay.services.store.memory_store.time") as mock_time:
        mock_time.monotonic.return_value = start + 11
        assert await store.set_nx("k", "second", ttl=10) is True
        assert await store.get("k") == "second"


async def test_delete_counts_existing_keys():
    store = MemoryStore()
    await store.set("a", 1)
    await store.rpush("b", "x")
    assert await store.delete("a", "b", "missing") == 2
    assert await store.get("a") is None
    assert await store.llen("b") == 0


async def test_list_push_and_range_preserve_order():
    store = MemoryStore()
    assert await store.rpush("l", "one") == 1
    assert await store.rpush("l", "two") == 2
    assert await store.rpush("l", "three") == 3
    assert await store.lrange("l") == ["one", "two", "three"]
    assert await store.lrange("l", 1, 1) == ["two"]
    assert await store.llen("l") == 3


async def test_pop_all_drains_list():
    store = MemoryStore()
    await store.rpush("l", "one")
    await store.rpush("l", "two")
    assert await store.pop_all("l") == ["one", "two"]
    assert await store.pop_all("l") == []
    assert not await store.exists("l")


async def test_hincrby_and_hgetall():
    store = MemoryStore()
    await store.hincrby("h", "total")
    await store.hincrby("h", "total", 2)
    await store.hincrby("h", "unique")
    assert await store.hgetall("h") == {"total": "3", "unique": "1"}
    assert await store.hgetall("missing") == {}


async def test_expire_applies_to_lists():
    store = MemoryStore()
    start = time.monotonic()
    await store.rpush("l", "x")
    assert await store.expire("l", 5) is True
    assert await store.expire("missing", 5) is False
    with patch("line_relay.services.store.memory_store.time") as mock_time:
        mock_time.monotonic.return_value = start + 6
        assert await store.lrange("l") == []


async def test_scan_matches_glob_pattern():
    store = MemoryStore()
    await store.rpush("batch:G1", "x")
    await store.rpush("batch:G2", "y")
    await store.hset("user:U1", {"groupId": "G1"})
    assert sorted(await store.scan("batch:*")) == ["batch:G1", "batch:G2"]
    assert await store.scan("nothing:*") == []


async def test_health_check():
    store = MemoryStore()
    assert await store.health_check() is True


async def test_hset_merges_fields_and_reads_back_as_strings():
    store = MemoryStore()
    assert await store.hset("user:U1", {"groupId": "G1", "apiKey": "k"}) == 2
    assert await store.hset("user:U1", {"groupId": "G2", "setupAt": "now"}) == 1
    assert await store.hgetall("user:U1") == {"groupId": "G2", "apiKey": "k", "setupAt": "now"}


async def test_hash_and_plain_values_do_not_mix():
    store = MemoryStore()
    await store.hset("user:U1", {"groupId": "G1"})
    with pytest.raises(TypeError):
        await store.get("user:U1")
    await store.set("dedup:order:O1", {"trackingNo": "T1"})
    with pytest.raises(TypeError):
        await store.hset("dedup:order:O1", {"status": "completed"})
