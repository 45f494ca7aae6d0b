"""ProShip order API client.

Config (via secrets):
    PROSHIP_API_BASE_URL - API root (default: https://api.proship.me)

Each sender authenticates with its own API key (from the identity router), so
the key is passed per call rather than configured here.
"""

from __future__ import annotations

from typing import Any

import aiohttp

from line_relay.services.logger.factory import LoggerFactory
from line_relay.services.orders.interface import OrderDetails, OrderDetailsInterface
from line_relay.services.secrets.interface import SecretsInterface

_DEFAULT_BASE_URL = "https://api.proship.me"
_TIMEOUT_SECONDS = 10
_UNKNOWN_NAME = "ไม่ระบุชื่อ"
_UNKNOWN_PHONE = "ไม่ระบุเบอร์"


class ProShipClient(OrderDetailsInterface):
    def __init__(self, secrets: SecretsInterface, logger: LoggerFactory) -> None:
        self._base_url = secrets.get_or_default("PROSHIP_API_BASE_URL", _DEFAULT_BASE_URL).rstrip("/")
        self.log = logger.for_component("proship")
        self._session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=_TIMEOUT_SECONDS))

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def fetch_order_details(self, order_id: str, api_key: str) -> OrderDetails | None:
        if self._session is None:
            await self.connect()
        assert self._session is not None
        url = f"{self._base_url}/orders/v1/orders/{order_id}"
        try:
            async with self._session.get(
                url, headers={"Authorization": f"Bearer {api_key}"}
            ) as resp:
                if resp.status != 200:
                    self.log.error("ProShip API error", order_id=order_id, status=resp.status,
                                   response=(await resp.text())[:200])
                    return None
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError, ValueError) as exc:
            self.log.error("ProShip API request failed", order_id=order_id, error=str(exc))
            return None
        return parse_order_details(data)


def parse_order_details(data: Any) -> OrderDetails | None:
    """Extract customer fields from a ProShip order document."""
    if not isinstance(data, dict):
        return None
    details = data.get("details") or {}
    customer = details.get("customer") if isinstance(details, dict) else None
    if not isinstance(customer, dict):
        return None
    return OrderDetails(
        customer_name=customer.get("name") or _UNKNOWN_NAME,
        customer_phone=customer.get("phoneNo") or _UNKNOWN_PHONE,
        tracking_no=data.get("trackingNo") or details.get("trackingNo"),
    )
