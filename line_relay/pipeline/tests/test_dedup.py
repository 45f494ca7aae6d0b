"""Tests for OrderDedupGate."""

from __future__ import annotations

import time
from unittest.mock import patch

from line_relay.pipeline.dedup import OrderDedupGate
from line_relay.services.logger.memory_logger import MemoryLogger
from line_relay.services.store.memory_store import MemoryStore


class _BrokenStore(MemoryStore):
    async def set_nx(self, key, value, ttl=None):
        raise ConnectionError("store down")


def _make_gate(store: MemoryStore | None = None) -> tuple[OrderDedupGate, MemoryStore, MemoryLogger]:
    store = store or MemoryStore()
    log = MemoryLogger()
    return OrderDedupGate(store, log), store, log


async def test_first_order_is_not_duplicate() -> None:
    gate, _, _ = _make_gate()
    result = await gate.check_and_mark("OrderA", "TH1")
    assert result.duplicate is False
    assert result.first_sent_at is not None


async def test_repeat_order_is_duplicate_with_first_timestamp() -> None:
    gate, _, _ = _make_gate()
    first = await gate.check_and_mark("OrderA")
    second = await gate.check_and_mark("OrderA")
    assert second.duplicate is True
    assert second.first_sent_at == first.first_sent_at


async def test_every_repeat_inside_window_is_duplicate() -> None:
    gate, _, _ = _make_gate()
    results = [await gate.check_and_mark("O1") for _ in range(4)]
    assert [r.duplicate for r in results] == [False, True, True, True]


async def test_marker_stores_order_and_tracking() -> None:
    gate, store, _ = _make_gate()
    await gate.check_and_mark("O1", "TH9")
    entry = await store.get("dedup:order:O1")
    assert entry["orderId"] == "O1"
    assert entry["trackingNo"] == "TH9"
    assert store.ttl_remaining("dedup:order:O1") > 12 * 3600 - 5


async def test_window_expiry_allows_send_again() -> None:
    gate, _, _ = _make_gate()
    start = time.monotonic()
    await gate.check_and_mark("O1")
    with patch("line_relay.services.store.memory_store.time") as mock_time:
        mock_time.monotonic.return_value = start + 12 * 3600 + 1
        result = await gate.check_and_mark("O1")
    assert result.duplicate is False


async def test_independent_orders_do_not_interfere() -> None:
    gate, _, _ = _make_gate()
    assert (await gate.check_and_mark("O1")).duplicate is False
    assert (await gate.check_and_mark("O2")).duplicate is False


async def test_empty_order_id_leaves_store_untouched() -> None:
    gate, store, _ = _make_gate()
    assert (await gate.check_and_mark("")).duplicate is False
    assert (await gate.check_and_mark(None)).duplicate is False
    assert await store.scan("*") == []


async def test_store_failure_fails_open() -> None:
    gate, _, log = _make_gate(_BrokenStore())
    result = await gate.check_and_mark("O1")
    assert result.duplicate is False
    assert log.at_level("WARN")[0].ctx["order_id"] == "O1"
