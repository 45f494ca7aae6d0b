"""Tests for the shared HMAC signature middleware."""

from __future__ import annotations

import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from line_relay.pipeline.signature_middleware import (
    create_signature_middleware,
    line_signature,
    webhook_signature,
)

WEBHOOK_SECRET = "webhook-secret"
LINE_SECRET = "line-secret"
BODY = json.dumps({"trackingNo": "TH1"}).encode()


# ── Helper to build a minimal aiohttp app with the middleware ─────────────────


def _make_app(webhook_secret: str | None = WEBHOOK_SECRET, line_secret: str | None = LINE_SECRET) -> web.Application:
    app = web.Application(middlewares=[create_signature_middleware(webhook_secret, line_secret)])

    async def echo(request: web.Request) -> web.Response:
        return web.json_response(await request.json())

    async def health(request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    app.router.add_post("/webhook", echo)
    app.router.add_post("/line/webhook", echo)
    app.router.add_get("/health", health)
    return app


@pytest.mark.asyncio
async def test_hub_signature_accepted_and_body_still_readable() -> None:
    headers = {"x-hub-signature-256": "sha256=" + webhook_signature(WEBHOOK_SECRET, BODY)}
    async with TestClient(TestServer(_make_app())) as client:
        resp = await client.post("/webhook", data=BODY, headers=headers)
        assert resp.status == 200
        assert (await resp.json())["trackingNo"] == "TH1"


@pytest.mark.asyncio
@pytest.mark.parametrize("header", ["x-webhook-signature", "x-signature"])
async def test_plain_hex_signature_headers(header: str) -> None:
    headers = {header: webhook_signature(WEBHOOK_SECRET, BODY)}
    async with TestClient(TestServer(_make_app())) as client:
        resp = await client.post("/webhook", data=BODY, headers=headers)
        assert resp.status == 200


@pytest.mark.asyncio
async def test_missing_signature_rejected() -> None:
    async with TestClient(TestServer(_make_app())) as client:
        resp = await client.post("/webhook", data=BODY)
        assert resp.status == 401
        assert (await resp.json())["error"] == "Missing signature"


@pytest.mark.asyncio
async def test_wrong_signature_rejected() -> None:
    headers = {"x-hub-signature-256": "sha256=" + webhook_signature("other", BODY)}
    async with TestClient(TestServer(_make_app())) as client:
        resp = await client.post("/webhook", data=BODY, headers=headers)
        assert resp.status == 401
        assert (await resp.json())["error"] == "Invalid signature"


@pytest.mark.asyncio
async def test_line_signature() -> None:
    async with TestClient(TestServer(_make_app())) as client:
        ok = await client.post("/line/webhook", data=BODY,
                               headers={"x-line-signature": line_signature(LINE_SECRET, BODY)})
        assert ok.status == 200
        bad = await client.post("/line/webhook", data=BODY,
                                headers={"x-line-signature": line_signature("other", BODY)})
        assert bad.status == 401


@pytest.mark.asyncio
async def test_unset_secrets_skip_checks() -> None:
    async with TestClient(TestServer(_make_app(None, None))) as client:
        assert (await client.post("/webhook", data=BODY)).status == 200
        assert (await client.post("/line/webhook", data=BODY)).status == 200


@pytest.mark.asyncio
async def test_other_paths_pass_through() -> None:
    async with TestClient(TestServer(_make_app())) as client:
        resp = await client.get("/health")
        assert resp.status == 200
