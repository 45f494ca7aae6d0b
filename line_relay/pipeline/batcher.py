"""Per-group batching of LINE notifications.

Each chat group has a FIFO queue in the store (``batch:{group_id}``) and at
most one in-process flush timer. A queue is flushed into one combined message
when it reaches ``size`` entries or when its timer fires, whichever is first.

States per group::

    EMPTY ──submit──▶ ACCUMULATING ──size / timer / admin──▶ FLUSHING ──▶ EMPTY

``submit`` never raises on its own account: if the queue cannot be written the
notification is delivered immediately through the caller's ``send_now``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

from line_relay.pipeline import keys
from line_relay.pipeline.formatting import BatchEntry, format_batch_message
from line_relay.services.chat.interface import ChatClientInterface
from line_relay.services.logger.interface import LoggingInterface
from line_relay.services.metrics.interface import MetricsInterface
from line_relay.services.store.interface import StoreInterface

SendNow = Callable[[], Awaitable[Any]]


@dataclass
class BatchConfig:
    enabled: bool = False
    size: int = 10
    interval: float = 900.0  # seconds

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BatchStats:
    batches_sent: int = 0
    messages_batched: int = 0
    fallbacks_sent: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SubmitResult:
    batched: bool
    queue_length: int = 0


class BatchAccumulator:
    def __init__(
        self,
        store: StoreInterface,
        chat: ChatClientInterface,
        log: LoggingInterface,
        metrics: MetricsInterface,
        config: BatchConfig,
        tz: ZoneInfo,
    ) -> None:
        self.store = store
        self.chat = chat
        self.log = log
        self.metrics = metrics
        self.config = config
        self.tz = tz
        self.stats = BatchStats()
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._flush_tasks: set[asyncio.Task] = set()
        self._closed = False

    # ── Submit ────────────────────────────────────────────────────────────

    async def submit(self, group_id: str, payload: dict[str, Any], send_now: SendNow) -> SubmitResult:
        """Queue *payload* for *group_id*, or deliver it now via *send_now*.

        Exceptions raised by ``send_now`` itself propagate to the caller.
        """
        if not self.config.enabled:
            await send_now()
            return SubmitResult(batched=False)

        try:
            entry = BatchEntry(payload=payload, timestamp=int(time.time() * 1000))
            length = await self.store.rpush(keys.batch_key(group_id), entry.to_json())
        except Exception as exc:
            self.stats.fallbacks_sent += 1
            self.metrics.counter("batch_fallbacks_total")
            self.log.error("Batch enqueue failed, sending immediately", group_id=group_id, error=str(exc))
            await send_now()
            return SubmitResult(batched=False)

        if length >= self.config.size:
            self._cancel_timer(group_id)
            self._schedule_flush(group_id)
        elif group_id not in self._timers:
            self._start_timer(group_id)

        self.log.debug("Notification queued", group_id=group_id, queue_length=length)
        return SubmitResult(batched=True, queue_length=length)

    # ── Flush ─────────────────────────────────────────────────────────────

    async def flush(self, group_id: str) -> int:
        """Drain the group's queue and send it as one message. Returns entries sent."""
        self._cancel_timer(group_id)
        try:
            raw_entries = await self.store.pop_all(keys.batch_key(group_id))
        except Exception as exc:
            self.stats.errors += 1
            self.metrics.counter("batch_errors_total")
            self.log.error("Batch drain failed", group_id=group_id, error=str(exc))
            self._start_timer(group_id)
            return 0

        entries: list[BatchEntry] = []
        for raw in raw_entries:
            try:
                entries.append(BatchEntry.from_json(raw))
            except (ValueError, KeyError, TypeError) as exc:
                self.log.warn("Skipping corrupt batch entry", group_id=group_id, error=str(exc))
        if not entries:
            return 0

        try:
            await self.chat.push_text(group_id, format_batch_message(entries, self.tz))
        except Exception as exc:
            self.stats.errors += 1
            self.metrics.counter("batch_errors_total")
            self.log.error("Batch send failed, messages dropped", group_id=group_id,
                           message_count=len(entries), error=str(exc))
            return 0

        self.stats.batches_sent += 1
        self.stats.messages_batched += len(entries)
        self.metrics.counter("batch_sent_total")
        self.metrics.counter("batch_messages_total", len(entries))
        self.log.info("Batch sent", group_id=group_id, message_count=len(entries))
        return len(entries)

    async def flush_all(self) -> int:
        """Flush every group with a queue, one after another. Returns batches sent."""
        flushed = 0
        for group_id in await self._queued_groups():
            if await self.flush(group_id):
                flushed += 1
        self.log.info("All batches flushed", batches=flushed)
        return flushed

    # ── Introspection ─────────────────────────────────────────────────────

    async def get_status(self) -> dict[str, Any]:
        groups = sorted(set(await self._queued_groups()) | set(self._timers))
        batches = [
            {
                "group_id": group_id,
                "message_count": await self.store.llen(keys.batch_key(group_id)),
                "timer_active": group_id in self._timers,
            }
            for group_id in groups
        ]
        self.metrics.gauge("batch_groups_pending", sum(1 for b in batches if b["message_count"]))
        return {
            "batches": batches,
            "stats": self.stats.to_dict(),
            "config": self.config.to_dict(),
        }

    async def find_timer_inconsistencies(self) -> list[dict[str, Any]]:
        """Groups where timer presence disagrees with queue non-emptiness."""
        status = await self.get_status()
        return [
            b for b in status["batches"]
            if b["timer_active"] != (b["message_count"] > 0)
        ]

    async def restore_timers(self) -> int:
        """Start timers for queues left in the store by a previous process."""
        if self._closed:
            return 0
        restored = 0
        for group_id in await self._queued_groups():
            if group_id in self._timers:
                continue
            if await self.store.llen(keys.batch_key(group_id)) > 0:
                self._start_timer(group_id)
                restored += 1
        if restored:
            self.log.info("Batch timers restored", groups=restored)
        return restored

    async def close(self) -> None:
        """Cancel timers and wait for in-flight flushes."""
        self._closed = True
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        if self._flush_tasks:
            await asyncio.gather(*self._flush_tasks, return_exceptions=True)

    # ── Timers ────────────────────────────────────────────────────────────

    async def _queued_groups(self) -> list[str]:
        found = await self.store.scan(f"{keys.BATCH_PREFIX}*")
        return [keys.group_from_batch_key(k) for k in found]

    def _start_timer(self, group_id: str) -> None:
        if self._closed:
            return
        loop = asyncio.get_running_loop()
        self._timers[group_id] = loop.call_later(self.config.interval, self._on_timer, group_id)

    def _cancel_timer(self, group_id: str) -> None:
        handle = self._timers.pop(group_id, None)
        if handle is not None:
            handle.cancel()

    def _on_timer(self, group_id: str) -> None:
        self._timers.pop(group_id, None)
        self._schedule_flush(group_id)

    def _schedule_flush(self, group_id: str) -> None:
        task = asyncio.get_running_loop().create_task(self.flush(group_id))
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    async def wait_for_flushes(self) -> None:
        """Wait until every scheduled flush has finished."""
        while self._flush_tasks:
            await asyncio.gather(*list(self._flush_tasks), return_exceptions=True)
