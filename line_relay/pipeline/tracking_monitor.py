"""Tracking-number duplicate monitoring.

Every (tracking_no, order_id, sender_id) observation is recorded against the
tracking number. The first observation within the 24-hour window is "unique";
later ones are duplicates and are also appended to a per-day duplicate log.
Per-day counters feed the tracking report.

The monitor is statistical: a store failure is logged and reported as a
first-seen observation so the notification pipeline never stalls on it.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from line_relay.pipeline import keys
from line_relay.services.logger.interface import LoggingInterface
from line_relay.services.store.interface import StoreInterface

_DEFAULT_REPORT_SIZE = 10


@dataclass
class Occurrence:
    order_id: str
    sender_id: str
    timestamp: int  # epoch ms

    def to_dict(self) -> dict[str, Any]:
        return {"orderId": self.order_id, "userId": self.sender_id, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Occurrence:
        return cls(order_id=data["orderId"], sender_id=data["userId"], timestamp=int(data["timestamp"]))


@dataclass
class TrackingRecord:
    tracking_no: str
    first_seen: int  # epoch ms
    occurrences: list[Occurrence] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trackingNo": self.tracking_no,
            "firstSeen": self.first_seen,
            "occurrences": [o.to_dict() for o in self.occurrences],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrackingRecord:
        return cls(
            tracking_no=data["trackingNo"],
            first_seen=int(data["firstSeen"]),
            occurrences=[Occurrence.from_dict(o) for o in data.get("occurrences", [])],
        )


@dataclass
class DuplicateEvent:
    tracking_no: str
    order_id: str
    sender_id: str
    timestamp: int
    occurrence_number: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps({
            "trackingNo": self.tracking_no,
            "orderId": self.order_id,
            "userId": self.sender_id,
            "timestamp": self.timestamp,
            "occurrenceNumber": self.occurrence_number,
        })

    @classmethod
    def from_json(cls, raw: str) -> DuplicateEvent:
        data = json.loads(raw)
        return cls(
            tracking_no=data["trackingNo"],
            order_id=data["orderId"],
            sender_id=data["userId"],
            timestamp=int(data["timestamp"]),
            occurrence_number=int(data["occurrenceNumber"]),
        )


@dataclass
class TrackingResult:
    is_duplicate: bool
    occurrence_count: int
    first_seen_at: int | None = None
    elapsed_since_first: int | None = None  # ms

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DailyStats:
    date: str
    total: int = 0
    unique: int = 0
    duplicates: int = 0

    @property
    def duplication_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return round(self.duplicates / self.total * 100, 2)

    def to_dict(self) -> dict[str, Any]:
        return {**asdict(self), "duplication_rate": self.duplication_rate}


class TrackingMonitor:
    def __init__(self, store: StoreInterface, log: LoggingInterface, tz: ZoneInfo) -> None:
        self.store = store
        self.log = log
        self.tz = tz

    def today(self) -> str:
        """Calendar day in the provider's zone, ``YYYY-MM-DD``."""
        return datetime.now(self.tz).date().isoformat()

    async def record_observation(self, tracking_no: str | None, order_id: str | None,
                                 sender_id: str | None) -> TrackingResult:
        if not tracking_no or not order_id or not sender_id:
            self.log.warn("Invalid tracking parameters", tracking_no=tracking_no,
                          order_id=order_id, sender_id=sender_id)
            return TrackingResult(is_duplicate=False, occurrence_count=1)

        try:
            return await self._record(tracking_no, order_id, sender_id)
        except Exception as exc:
            self.log.error("Error in tracking monitor", tracking_no=tracking_no, error=str(exc))
            return TrackingResult(is_duplicate=False, occurrence_count=1)

    async def _record(self, tracking_no: str, order_id: str, sender_id: str) -> TrackingResult:
        now = int(time.time() * 1000)
        day = self.today()
        key = keys.tracking_key(tracking_no)
        occurrence = Occurrence(order_id=order_id, sender_id=sender_id, timestamp=now)

        existing = await self.store.get(key)
        is_duplicate = existing is not None
        if is_duplicate:
            record = TrackingRecord.from_dict(existing)
            record.occurrences.append(occurrence)
            event = DuplicateEvent(
                tracking_no=tracking_no,
                order_id=order_id,
                sender_id=sender_id,
                timestamp=now,
                occurrence_number=len(record.occurrences),
            )
            dup_key = keys.duplicates_key(day)
            await self.store.rpush(dup_key, event.to_json())
            await self.store.expire(dup_key, keys.DUPLICATES_TTL)
            self.log.warn("Duplicate tracking number detected", tracking_no=tracking_no,
                          occurrences=len(record.occurrences), order_id=order_id,
                          sender_id=sender_id, elapsed_ms=now - record.first_seen)
        else:
            record = TrackingRecord(tracking_no=tracking_no, first_seen=now, occurrences=[occurrence])

        await self.store.set(key, record.to_dict(), ttl=keys.TRACKING_TTL)

        day_key = keys.stats_key(day)
        await self.store.hincrby(day_key, "total")
        await self.store.hincrby(day_key, "duplicates" if is_duplicate else "unique")
        await self.store.expire(day_key, keys.STATS_TTL)

        return TrackingResult(
            is_duplicate=is_duplicate,
            occurrence_count=len(record.occurrences),
            first_seen_at=record.first_seen,
            elapsed_since_first=now - record.first_seen,
        )

    # ── Reporting ─────────────────────────────────────────────────────────

    async def get_stats(self, date: str | None = None) -> DailyStats | None:
        """Counters for *date* (default today); zeroed if none. None if the store fails."""
        day = date or self.today()
        try:
            raw = await self.store.hgetall(keys.stats_key(day))
        except Exception as exc:
            self.log.error("Error getting stats", date=day, error=str(exc))
            return None
        return DailyStats(
            date=day,
            total=int(raw.get("total", 0)),
            unique=int(raw.get("unique", 0)),
            duplicates=int(raw.get("duplicates", 0)),
        )

    async def get_duplicates(self, date: str | None = None) -> list[DuplicateEvent]:
        day = date or self.today()
        try:
            raw_events = await self.store.lrange(keys.duplicates_key(day))
        except Exception as exc:
            self.log.error("Error getting duplicates", date=day, error=str(exc))
            return []
        events = []
        for raw in raw_events:
            try:
                events.append(DuplicateEvent.from_json(raw))
            except (ValueError, KeyError, TypeError) as exc:
                self.log.warn("Skipping corrupt duplicate log entry", date=day, error=str(exc))
        return events

    async def get_detailed_report(self, date: str | None = None,
                                  top: int = _DEFAULT_REPORT_SIZE) -> dict[str, Any]:
        stats = await self.get_stats(date)
        duplicates = await self.get_duplicates(date)

        by_tracking: dict[str, list[DuplicateEvent]] = {}
        for event in duplicates:
            by_tracking.setdefault(event.tracking_no, []).append(event)

        # sorted() is stable: equal counts keep first-appearance order
        ranked = sorted(by_tracking.items(), key=lambda item: len(item[1]), reverse=True)
        return {
            "stats": stats.to_dict() if stats else None,
            "duplicate_details": {
                tracking_no: [e.to_dict() for e in events]
                for tracking_no, events in by_tracking.items()
            },
            "duplicate_count": len(by_tracking),
            "top_duplicates": [
                {
                    "tracking_no": tracking_no,
                    "count": len(events),
                    "orders": list(dict.fromkeys(e.order_id for e in events)),
                    "users": list(dict.fromkeys(e.sender_id for e in events)),
                    "occurrence_numbers": [e.occurrence_number for e in events],
                }
                for tracking_no, events in ranked[:top]
            ],
        }

    async def clear(self) -> int:
        """Delete every tracking record, counter and duplicate log. Returns keys deleted."""
        found = await self.store.scan(f"{keys.TRACKING_PREFIX}*")
        if not found:
            return 0
        deleted = await self.store.delete(*found)
        self.log.info("Tracking statistics cleared", deleted=deleted)
        return deleted
