"""Tests for BatchAccumulator."""

from __future__ import annotations

import asyncio
from zoneinfo import ZoneInfo

import pytest

from line_relay.pipeline.batcher import BatchAccumulator, BatchConfig
from line_relay.services.chat.memory_chat import MemoryChatClient
from line_relay.services.logger.memory_logger import MemoryLogger
from line_relay.services.metrics.memory_metrics import MemoryMetrics
from line_relay.services.store.memory_store import MemoryStore

BANGKOK = ZoneInfo("Asia/Bangkok")


class _BrokenStore(MemoryStore):
    async def rpush(self, key, value):
        raise ConnectionError("store down")


class _StallingPopStore(MemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def pop_all(self, key):
        await self.release.wait()
        raise ConnectionError("store down")


class _Sender:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1


def _payload(n: int) -> dict:
    return {"trackingNo": f"TH{n}", "status": f"status-{n}", "customerName": "A", "customerPhone": "081"}


def _make(store: MemoryStore | None = None, **config) -> tuple[BatchAccumulator, MemoryStore, MemoryChatClient]:
    store = store or MemoryStore()
    chat = MemoryChatClient()
    cfg = BatchConfig(**{"enabled": True, "size": 3, "interval": 60.0, **config})
    batcher = BatchAccumulator(store, chat, MemoryLogger(), MemoryMetrics(), cfg, BANGKOK)
    return batcher, store, chat


async def test_disabled_sends_immediately() -> None:
    batcher, store, _ = _make(enabled=False)
    sender = _Sender()
    result = await batcher.submit("G1", _payload(1), sender)
    assert result.batched is False
    assert sender.calls == 1
    assert await store.scan("batch:*") == []


async def test_first_submit_queues_and_starts_timer() -> None:
    batcher, store, chat = _make()
    sender = _Sender()
    result = await batcher.submit("G1", _payload(1), sender)
    assert result.batched is True
    assert result.queue_length == 1
    assert sender.calls == 0
    assert await store.llen("batch:G1") == 1
    assert chat.pushed == []
    status = await batcher.get_status()
    assert status["batches"] == [{"group_id": "G1", "message_count": 1, "timer_active": True}]
    await batcher.close()


async def test_size_threshold_flushes_once_in_order() -> None:
    batcher, store, chat = _make()
    for n in range(3):
        await batcher.submit("G1", _payload(n), _Sender())
    await batcher.wait_for_flushes()

    texts = chat.texts_to("G1")
    assert len(texts) == 1
    assert texts[0].index("TH0") < texts[0].index("TH1") < texts[0].index("TH2")
    assert texts[0].startswith("📊 แจ้งเตือน 3 รายการ")
    assert await store.exists("batch:G1") is False
    assert await batcher.find_timer_inconsistencies() == []
    assert batcher.stats.batches_sent == 1
    assert batcher.stats.messages_batched == 3


async def test_timer_flushes_single_entry() -> None:
    batcher, store, chat = _make(interval=0.05)
    await batcher.submit("G1", _payload(1), _Sender())
    await asyncio.sleep(0.15)
    await batcher.wait_for_flushes()

    assert len(chat.texts_to("G1")) == 1
    assert "TH1" in chat.texts_to("G1")[0]
    status = await batcher.get_status()
    assert status["batches"] == []


async def test_groups_are_independent() -> None:
    batcher, _, chat = _make()
    await batcher.submit("G1", _payload(1), _Sender())
    await batcher.submit("G2", _payload(2), _Sender())
    assert await batcher.flush("G1") == 1
    assert chat.texts_to("G2") == []
    status = await batcher.get_status()
    assert [b["group_id"] for b in status["batches"]] == ["G2"]
    await batcher.close()


async def test_store_failure_falls_back_to_immediate_send() -> None:
    batcher, _, _ = _make(store=_BrokenStore())
    sender = _Sender()
    result = await batcher.submit("G1", _payload(1), sender)
    assert result.batched is False
    assert sender.calls == 1
    assert batcher.stats.fallbacks_sent == 1
    assert batcher.metrics.counters["batch_fallbacks_total"] == 1


async def test_send_now_errors_belong_to_caller() -> None:
    batcher, _, _ = _make(store=_BrokenStore())

    async def failing_send() -> None:
        raise RuntimeError("line down")

    with pytest.raises(RuntimeError):
        await batcher.submit("G1", _payload(1), failing_send)


async def test_send_failure_counts_error_and_drops_content() -> None:
    batcher, store, chat = _make()
    await batcher.submit("G1", _payload(1), _Sender())
    chat.fail = True
    assert await batcher.flush("G1") == 0
    assert batcher.stats.errors == 1
    assert await store.exists("batch:G1") is False
    error = batcher.log.at_level("ERROR")[0]
    assert error.ctx["group_id"] == "G1"
    assert error.ctx["message_count"] == 1


async def test_corrupt_entries_are_skipped() -> None:
    batcher, store, chat = _make()
    await store.rpush("batch:G1", "{broken")
    await batcher.submit("G1", _payload(7), _Sender())
    assert await batcher.flush("G1") == 1
    assert chat.texts_to("G1")[0].startswith("📊 แจ้งเตือน 1 รายการ")


async def test_flush_empty_group_is_noop() -> None:
    batcher, _, chat = _make()
    assert await batcher.flush("G1") == 0
    assert chat.pushed == []


async def test_flush_all_drains_every_group() -> None:
    batcher, store, chat = _make()
    await batcher.submit("G1", _payload(1), _Sender())
    await batcher.submit("G2", _payload(2), _Sender())
    assert await batcher.flush_all() == 2
    assert len(chat.pushed) == 2
    assert await store.scan("batch:*") == []
    assert batcher._timers == {}


async def test_get_status_is_idempotent() -> None:
    batcher, _, _ = _make()
    await batcher.submit("G1", _payload(1), _Sender())
    assert await batcher.get_status() == await batcher.get_status()
    await batcher.close()


async def test_restore_timers_for_leftover_queue() -> None:
    batcher, store, _ = _make()
    await store.rpush("batch:G1", "{}")

    inconsistent = await batcher.find_timer_inconsistencies()
    assert inconsistent == [{"group_id": "G1", "message_count": 1, "timer_active": False}]

    assert await batcher.restore_timers() == 1
    assert await batcher.find_timer_inconsistencies() == []
    assert await batcher.restore_timers() == 0
    await batcher.close()


async def test_leftover_queue_gets_timer_on_next_submit() -> None:
    batcher, store, _ = _make(size=10)
    await store.rpush("batch:G1", "{}")
    result = await batcher.submit("G1", _payload(1), _Sender())
    assert result.queue_length == 2
    assert await batcher.find_timer_inconsistencies() == []
    await batcher.close()


async def test_close_cancels_timers() -> None:
    batcher, _, _ = _make()
    await batcher.submit("G1", _payload(1), _Sender())
    await batcher.close()
    status = await batcher.get_status()
    assert status["batches"][0]["timer_active"] is False


async def test_failed_drain_during_close_leaves_no_timer() -> None:
    store = _StallingPopStore()
    batcher, _, _ = _make(store, size=1)
    await batcher.submit("G1", _payload(1), _Sender())
    await asyncio.sleep(0)

    closing = asyncio.create_task(batcher.close())
    await asyncio.sleep(0)
    store.release.set()
    await closing

    assert batcher._timers == {}
    assert batcher.stats.errors == 1


async def test_submit_after_close_starts_no_timer() -> None:
    batcher, store, _ = _make()
    await batcher.close()
    result = await batcher.submit("G1", _payload(1), _Sender())
    assert result.batched
    assert await store.llen("batch:G1") == 1
    assert batcher._timers == {}
    assert await batcher.restore_timers() == 0
