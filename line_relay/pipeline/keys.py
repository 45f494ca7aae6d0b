"""Store key space shared by the relay components.

    tracking:{tracking_no}            → JSON tracking record            (24h)
    tracking:stats:{YYYY-MM-DD}       → hash total/unique/duplicates    (30d)
    tracking:duplicates:{YYYY-MM-DD}  → list of JSON duplicate events   (7d)
    dedup:order:{order_id}            → JSON order dedup entry          (12h)
    batch:{group_id}                  → list of JSON queued payloads
    user:{sender_id}                  → JSON identity mapping
    setup:{group_id}                  → JSON setup session              (30m)
"""

from __future__ import annotations

TRACKING_PREFIX = "tracking:"
STATS_PREFIX = "tracking:stats:"
DUPLICATES_PREFIX = "tracking:duplicates:"
ORDER_DEDUP_PREFIX = "dedup:order:"
BATCH_PREFIX = "batch:"
USER_PREFIX = "user:"
SETUP_PREFIX = "setup:"

DAY_SECONDS = 86400
TRACKING_TTL = DAY_SECONDS
STATS_TTL = 30 * DAY_SECONDS
DUPLICATES_TTL = 7 * DAY_SECONDS
ORDER_DEDUP_TTL = 12 * 3600
SETUP_TTL = 30 * 60
SETUP_COMPLETED_TTL = 3600


def tracking_key(tracking_no: str) -> str:
    return f"{TRACKING_PREFIX}{tracking_no}"


def stats_key(day: str) -> str:
    return f"{STATS_PREFIX}{day}"


def duplicates_key(day: str) -> str:
    return f"{DUPLICATES_PREFIX}{day}"


def order_dedup_key(order_id: str) -> str:
    return f"{ORDER_DEDUP_PREFIX}{order_id}"


def batch_key(group_id: str) -> str:
    return f"{BATCH_PREFIX}{group_id}"


def group_from_batch_key(key: str) -> str:
    return key[len(BATCH_PREFIX):]


def user_key(sender_id: str) -> str:
    return f"{USER_PREFIX}{sender_id}"


def setup_key(group_id: str) -> str:
    return f"{SETUP_PREFIX}{group_id}"
