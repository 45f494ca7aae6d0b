from __future__ import annotations

from line_relay.services.orders.interface import OrderDetails, OrderDetailsInterface


class MemoryOrderDetails(OrderDetailsInterface):
    """Canned order lookups for tests; records every (order_id, api_key) call."""

    def __init__(self, orders: dict[str, OrderDetails] | None = None) -> None:
        self.orders: dict[str, OrderDetails] = dict(orders or {})
        self.calls: list[tuple[str, str]] = []

    async def fetch_order_details(self, order_id: str, api_key: str) -> OrderDetails | None:
        self.calls.append((order_id, api_key))
        return self.orders.get(order_id)
