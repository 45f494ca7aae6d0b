"""Store-based order deduplication.

One marker per order id with a 12-hour TTL. For each outgoing notification:
  - first time the order is seen  → marker written, deliver
  - marker already present        → duplicate, skip delivery

The marker is written with SET NX so two concurrent webhooks for the same
order cannot both see "new". A store outage fails open: the order may be
double-sent, but it is never silently dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from line_relay.pipeline import keys
from line_relay.services.logger.interface import LoggingInterface
from line_relay.services.store.interface import StoreInterface


@dataclass
class GateResult:
    duplicate: bool
    first_sent_at: str | None = None  # ISO-8601 UTC


class OrderDedupGate:
    """Deduplication backed by the store (Redis in production, MemoryStore in tests)."""

    def __init__(self, store: StoreInterface, log: LoggingInterface) -> None:
        self.store = store
        self.log = log

    async def check_and_mark(self, order_id: str | None, tracking_no: str | None = None) -> GateResult:
        """Mark *order_id* as sent, reporting whether it already was.

        Returns:
            GateResult(duplicate=False, first_sent_at=<now>)       — first notification
            GateResult(duplicate=True, first_sent_at=<original>)   — seen within 12h
        """
        if not order_id:
            return GateResult(duplicate=False)

        key = keys.order_dedup_key(order_id)
        entry = {
            "orderId": order_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "trackingNo": tracking_no,
        }
        try:
            if await self.store.set_nx(key, entry, ttl=keys.ORDER_DEDUP_TTL):
                return GateResult(duplicate=False, first_sent_at=entry["timestamp"])

            existing = await self.store.get(key)
        except Exception as exc:
            self.log.warn("Order dedup check failed, allowing send", order_id=order_id, error=str(exc))
            return GateResult(duplicate=False)

        first_sent_at = existing.get("timestamp") if isinstance(existing, dict) else None
        self.log.info("Duplicate order notification suppressed", order_id=order_id,
                      first_sent_at=first_sent_at)
        return GateResult(duplicate=True, first_sent_at=first_sent_at)
