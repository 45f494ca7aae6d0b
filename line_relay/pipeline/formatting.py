"""Message text for LINE groups: single notifications and combined batches."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

BUDDHIST_ERA_OFFSET = 543
SEPARATOR = "━━━━━━━━━━━━━━━━━━"
NO_STATUS = "ไม่ระบุสถานะ"
NO_TRACKING = "ไม่มี"
NOT_SPECIFIED = "ไม่ระบุ"

_TOKEN_RE = re.compile(r"\{\{([\w.]+)\}\}")


def format_notification(data: dict[str, Any], template: str | None = None) -> str:
    """Render one webhook document as chat text.

    A configured template wins; otherwise GitHub and Stripe events get a short
    summary and anything else is pretty-printed JSON.
    """
    if template:
        return _format_template(data, template)
    if data.get("repository") and data.get("action"):
        return _format_github(data)
    if data.get("type") and data.get("data"):
        return _format_stripe(data)
    return json.dumps(data, indent=2, ensure_ascii=False)


def _format_template(data: dict[str, Any], template: str) -> str:
    values = dict(_flatten(data))

    def substitute(match: re.Match[str]) -> str:
        token = match.group(1)
        if token not in values:
            return match.group(0)
        value = values[token]
        return str(value) if value not in (None, "", 0, False) else "N/A"

    return _TOKEN_RE.sub(substitute, template)


def _flatten(obj: dict[str, Any], prefix: str = ""):
    for key, value in obj.items():
        token = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            yield from _flatten(value, token)
        else:
            yield token, value


def _format_github(data: dict[str, Any]) -> str:
    repository = data.get("repository") or {}
    sender = data.get("sender") or {}
    title = (data.get("pull_request") or {}).get("title") or (data.get("issue") or {}).get("title")
    return (
        f"🔔 GitHub Event: {data['action']}\n"
        f"📦 Repository: {repository.get('full_name')}\n"
        f"👤 User: {sender.get('login') or 'Unknown'}\n"
        f"📝 Details: {title or 'N/A'}"
    )


def _format_stripe(data: dict[str, Any]) -> str:
    obj = (data.get("data") or {}).get("object") or {}
    amount = obj.get("amount")
    amount_text = f"${amount / 100:.2f}" if isinstance(amount, (int, float)) and amount else "N/A"
    return (
        f"💳 Stripe Event: {data['type']}\n"
        f"💰 Amount: {amount_text}\n"
        f"🆔 ID: {obj.get('id') or 'N/A'}"
    )


# ── Batches ───────────────────────────────────────────────────────────────────


@dataclass
class BatchEntry:
    """One queued notification: the compact payload and its enqueue time (epoch ms)."""

    payload: dict[str, Any]
    timestamp: int

    def to_json(self) -> str:
        return json.dumps({"webhookData": self.payload, "timestamp": self.timestamp}, ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> BatchEntry:
        """Decode a queued entry. Raises ValueError/KeyError/TypeError on corrupt input."""
        doc = json.loads(raw)
        payload = doc["webhookData"]
        if not isinstance(payload, dict):
            raise TypeError("webhookData must be an object")
        return cls(payload=payload, timestamp=int(doc["timestamp"]))


def format_batch_message(entries: list[BatchEntry], tz: ZoneInfo, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    first = _from_ms(entries[0].timestamp, tz)
    last = _from_ms(entries[-1].timestamp, tz)

    lines = [
        f"📊 แจ้งเตือน {len(entries)} รายการ [{first:%H:%M}-{last:%H:%M}]",
        SEPARATOR,
        "",
    ]
    for number, entry in enumerate(entries, start=1):
        data = entry.payload
        lines.append(f"{number}️⃣ สถานะ: {data.get('status') or NO_STATUS}")
        lines.append(f"🏷️ Tracking: {data.get('trackingNo') or NO_TRACKING}")
        lines.append(f"👤 ลูกค้า: {data.get('customerName') or NOT_SPECIFIED}")
        lines.append(f"📞 เบอร์โทร: {data.get('customerPhone') or NOT_SPECIFIED}")
        if number < len(entries):
            lines.append("")
    lines.append("")
    lines.append(SEPARATOR)
    lines.append(f"🕒 {thai_datetime(now.astimezone(tz))}")
    return "\n".join(lines)


def thai_datetime(moment: datetime) -> str:
    """``d/m/yyyy HH:MM:SS`` with a Buddhist-era year, as Thai LINE users read dates."""
    return (
        f"{moment.day}/{moment.month}/{moment.year + BUDDHIST_ERA_OFFSET} "
        f"{moment:%H:%M:%S}"
    )


def _from_ms(epoch_ms: int, tz: ZoneInfo) -> datetime:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).astimezone(tz)
