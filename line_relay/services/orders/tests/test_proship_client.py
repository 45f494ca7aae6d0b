"""Tests for ProShipClient using a local aiohttp server as the ProShip API."""

from __future__ import annotations

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from line_relay.services.logger.factory import LoggerFactory
from line_relay.services.orders.proship_client import ProShipClient, parse_order_details
from line_relay.services.secrets.env_secrets import EnvSecrets

ORDER_DOC = {
    "trackingNo": "TH123",
    "details": {"customer": {"name": "สมชาย", "phoneNo": "0812345678"}},
}


@pytest.fixture
async def proship():
    seen_auth: list[str] = []

    async def get_order(request: web.Request) -> web.Response:
        seen_auth.append(request.headers.get("Authorization", ""))
        order_id = request.match_info["order_id"]
        if order_id == "O-1":
            return web.json_response(ORDER_DOC)
        if order_id == "O-garbage":
            return web.Response(text="<html>oops</html>")
        return web.json_response({"message": "not found"}, status=404)

    app = web.Application()
    app.router.add_get("/orders/v1/orders/{order_id}", get_order)
    server = TestServer(app)
    await server.start_server()
    logger = LoggerFactory(default_impl="memory")
    client = ProShipClient(
        EnvSecrets(overrides={"PROSHIP_API_BASE_URL": str(server.make_url("/"))}), logger
    )
    yield client, seen_auth, logger
    await client.disconnect()
    await server.close()


async def test_fetch_order_details_extracts_customer(proship):
    client, seen_auth, _ = proship
    details = await client.fetch_order_details("O-1", "eyJkey")
    assert details is not None
    assert details.customer_name == "สมชาย"
    assert details.customer_phone == "0812345678"
    assert details.tracking_no == "TH123"
    assert seen_auth == ["Bearer eyJkey"]


async def test_http_error_returns_none_and_logs(proship):
    client, _, logger = proship
    assert await client.fetch_order_details("O-missing", "eyJkey") is None
    assert "ProShip API error" in logger.create().messages


async def test_unparseable_body_returns_none(proship):
    client, _, logger = proship
    assert await client.fetch_order_details("O-garbage", "eyJkey") is None
    assert "ProShip API request failed" in logger.create().messages


def test_parse_order_details_placeholders_for_missing_customer_fields():
    details = parse_order_details({"details": {"customer": {}, "trackingNo": "TH9"}})
    assert details is not None
    assert details.customer_name == "ไม่ระบุชื่อ"
    assert details.customer_phone == "ไม่ระบุเบอร์"
    assert details.tracking_no == "TH9"


def test_parse_order_details_without_customer():
    assert parse_order_details({"details": {}}) is None
    assert parse_order_details(["not", "a", "dict"]) is None
