"""Inbound webhook parsing.

The shipping provider posts order-status events in two shapes: fields at the
top level, or a JSON document serialized into the ``text`` field. Both are
normalised into a ``NotificationEvent``; anything that is not a JSON object
becomes a ``MalformedPayload``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Union

from line_relay.services.orders.interface import OrderDetails


@dataclass(frozen=True)
class NotificationEvent:
    tracking_no: str | None
    order_id: str | None        # ``eId`` on the wire
    sender_id: str | None       # ``createdBy`` on the wire
    status_text: str | None
    data: dict[str, Any] = field(default_factory=dict)
    customer_name: str | None = None
    customer_phone: str | None = None

    @property
    def is_trackable(self) -> bool:
        return bool(self.tracking_no and self.order_id and self.sender_id)

    def with_order_details(self, details: OrderDetails) -> NotificationEvent:
        return replace(
            self,
            customer_name=details.customer_name,
            customer_phone=details.customer_phone,
        )

    def to_payload(self) -> dict[str, Any]:
        """The merged webhook document plus enrichment, as the formatter sees it."""
        payload = dict(self.data)
        if self.customer_name is not None:
            payload["customerName"] = self.customer_name
        if self.customer_phone is not None:
            payload["customerPhone"] = self.customer_phone
        return payload

    def batch_payload(self) -> dict[str, Any]:
        """The compact record queued for a batched group message."""
        return {
            "trackingNo": self.tracking_no,
            "eId": self.order_id,
            "createdBy": self.sender_id,
            "status": self.status_text,
            "customerName": self.customer_name,
            "customerPhone": self.customer_phone,
        }


@dataclass(frozen=True)
class MalformedPayload:
    reason: str


ParseResult = Union[NotificationEvent, MalformedPayload]


def parse_webhook(body: Any) -> ParseResult:
    """Normalise a decoded webhook body. Nested ``text`` JSON wins over top-level keys."""
    if not isinstance(body, dict):
        return MalformedPayload(f"expected a JSON object, got {type(body).__name__}")

    merged = dict(body)
    raw_text = body.get("text")
    text_is_document = False
    if isinstance(raw_text, str):
        nested = _try_json_object(raw_text)
        if nested is not None:
            merged.update(nested)
            text_is_document = True

    status = _text_field(merged, "message") or _text_field(merged, "status")
    if status is None and not text_is_document and isinstance(raw_text, str):
        status = raw_text.strip() or None

    return NotificationEvent(
        tracking_no=_text_field(merged, "trackingNo"),
        order_id=_text_field(merged, "eId"),
        sender_id=_text_field(merged, "createdBy"),
        status_text=status,
        data=merged,
    )


def _try_json_object(raw: str) -> dict[str, Any] | None:
    try:
        value = json.loads(raw)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _text_field(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
