"""Notification relay: one parsed webhook → at most one LINE delivery.

Order of steps for each event:
  1. record the tracking observation (statistics; blocks only when configured)
  2. resolve the sender's group (unmapped → skipped)
  3. order dedup gate (seen within 12h → deduplicated)
  4. enrich with ProShip customer details when the sender has an API key
  5. format and hand to the batcher (batched, or sent immediately)

Store trouble inside steps 1-4 degrades to the fail-open defaults of each
component. A failed immediate LINE push propagates to the caller.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from line_relay.pipeline.batcher import BatchAccumulator
from line_relay.pipeline.dedup import OrderDedupGate
from line_relay.pipeline.events import NotificationEvent
from line_relay.pipeline.formatting import format_notification
from line_relay.pipeline.routing import IdentityRouter
from line_relay.pipeline.tracking_monitor import TrackingMonitor
from line_relay.services.chat.interface import ChatClientInterface
from line_relay.services.logger.interface import LoggingInterface
from line_relay.services.metrics.interface import MetricsInterface
from line_relay.services.orders.interface import OrderDetailsInterface

SKIPPED = "skipped"
DEDUPLICATED = "deduplicated"
BATCHED = "batched"
SENT = "sent"


@dataclass
class RelayOutcome:
    outcome: str
    reason: str | None = None
    group_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": True, "outcome": self.outcome}
        if self.reason:
            body["reason"] = self.reason
        if self.group_id:
            body["group_id"] = self.group_id
        body.update(self.details)
        return body


class NotificationRelay:
    def __init__(
        self,
        tracking: TrackingMonitor,
        router: IdentityRouter,
        gate: OrderDedupGate,
        orders: OrderDetailsInterface,
        batcher: BatchAccumulator,
        chat: ChatClientInterface,
        log: LoggingInterface,
        metrics: MetricsInterface,
        template: str | None = None,
        tracking_blocks_delivery: bool = False,
    ) -> None:
        self.tracking = tracking
        self.router = router
        self.gate = gate
        self.orders = orders
        self.batcher = batcher
        self.chat = chat
        self.log = log
        self.metrics = metrics
        self.template = template
        self.tracking_blocks_delivery = tracking_blocks_delivery

    async def handle(self, event: NotificationEvent) -> RelayOutcome:
        started = time.monotonic()
        outcome = await self._handle(event)
        self.metrics.counter("webhook_outcomes_total", tags={"outcome": outcome.outcome})
        self.metrics.histogram("webhook_processing_seconds", time.monotonic() - started)
        return outcome

    async def _handle(self, event: NotificationEvent) -> RelayOutcome:
        if event.is_trackable:
            observation = await self.tracking.record_observation(
                event.tracking_no, event.order_id, event.sender_id
            )
            if observation.is_duplicate and self.tracking_blocks_delivery:
                self.log.info("Duplicate tracking number blocked", tracking_no=event.tracking_no,
                              occurrences=observation.occurrence_count)
                return RelayOutcome(
                    DEDUPLICATED,
                    reason="tracking_duplicate",
                    details={"tracking_no": event.tracking_no,
                             "occurrence_count": observation.occurrence_count},
                )

        group_id = await self.router.resolve_group(event.sender_id)
        if group_id is None:
            self.log.info("No group mapping for sender, skipping", sender_id=event.sender_id,
                          tracking_no=event.tracking_no)
            return RelayOutcome(SKIPPED, reason="unmapped_sender", details={"sender_id": event.sender_id})

        gate = await self.gate.check_and_mark(event.order_id, event.tracking_no)
        if gate.duplicate:
            return RelayOutcome(
                DEDUPLICATED,
                reason="order_duplicate",
                group_id=group_id,
                details={"order_id": event.order_id, "first_sent_at": gate.first_sent_at},
            )

        event = await self._enrich(event)
        text = format_notification(event.to_payload(), self.template)

        async def send_now() -> None:
            await self.chat.push_text(group_id, text)

        result = await self.batcher.submit(group_id, event.batch_payload(), send_now)
        if result.batched:
            return RelayOutcome(BATCHED, group_id=group_id, details={"queue_length": result.queue_length})
        self.log.info("Notification sent", group_id=group_id, tracking_no=event.tracking_no)
        return RelayOutcome(SENT, group_id=group_id)

    async def _enrich(self, event: NotificationEvent) -> NotificationEvent:
        if not event.order_id:
            return event
        try:
            api_key = await self.router.resolve_credential(event.sender_id)
            if not api_key:
                return event
            details = await self.orders.fetch_order_details(event.order_id, api_key)
        except Exception as exc:
            self.log.warn("Order enrichment failed", order_id=event.order_id, error=str(exc))
            return event
        return event.with_order_details(details) if details else event
