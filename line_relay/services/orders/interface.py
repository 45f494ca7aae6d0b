from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class OrderDetails:
    """Customer fields the shipping provider holds for an order."""

    customer_name: str
    customer_phone: str
    tracking_no: str | None = None


class OrderDetailsInterface(ABC):
    """Order lookup against the shipping provider, authenticated per sender."""

    async def connect(self) -> None:
        """Open HTTP resources. Override as needed."""

    async def disconnect(self) -> None:
        """Release HTTP resources. Override as needed."""

    @abstractmethod
    async def fetch_order_details(self, order_id: str, api_key: str) -> OrderDetails | None:
        """Return the order's customer details, or None when unavailable.

        Implementations never raise: enrichment is optional for delivery.
        """
        ...
