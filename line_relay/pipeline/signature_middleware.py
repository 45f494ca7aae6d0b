"""Shared HMAC signature middleware for inbound webhooks.

Provides:
- ``create_signature_middleware()`` — aiohttp middleware factory verifying
  request bodies against per-path secrets
- ``webhook_signature()`` — hex HMAC-SHA256 used by order-status senders
- ``line_signature()`` — base64 HMAC-SHA256 used by the LINE platform
"""

from __future__ import annotations

import base64
import hashlib
import hmac

from aiohttp import web

WEBHOOK_PATH = "/webhook"
LINE_WEBHOOK_PATH = "/line/webhook"


def webhook_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def line_signature(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def _unauthorized(error: str) -> web.Response:
    return web.json_response({"success": False, "error": error}, status=401)


def verify_webhook_request(secret: str, headers, body: bytes) -> str | None:
    """Return an error message, or None when the signature matches.

    Accepts ``x-hub-signature-256: sha256=<hex>`` or a bare hex digest in
    ``x-webhook-signature`` / ``x-signature``.
    """
    expected = webhook_signature(secret, body)
    hub = headers.get("x-hub-signature-256")
    if hub is not None:
        return None if hmac.compare_digest(hub, f"sha256={expected}") else "Invalid signature"
    signature = headers.get("x-webhook-signature") or headers.get("x-signature")
    if not signature:
        return "Missing signature"
    return None if hmac.compare_digest(signature, expected) else "Invalid signature"


def verify_line_request(secret: str, headers, body: bytes) -> str | None:
    signature = headers.get("x-line-signature")
    if not signature:
        return "Missing signature"
    expected = line_signature(secret, body)
    return None if hmac.compare_digest(signature, expected) else "Invalid signature"


def create_signature_middleware(
    webhook_secret: str | None,
    line_channel_secret: str | None,
) -> web.middleware:
    """Create an aiohttp middleware that verifies webhook signatures.

    ``POST /webhook`` is checked against *webhook_secret* and
    ``POST /line/webhook`` against *line_channel_secret*. A path whose secret
    is empty is not checked; every other path passes through.
    """
    checks = {}
    if webhook_secret:
        checks[WEBHOOK_PATH] = (webhook_secret, verify_webhook_request)
    if line_channel_secret:
        checks[LINE_WEBHOOK_PATH] = (line_channel_secret, verify_line_request)

    @web.middleware
    async def signature_middleware(request: web.Request, handler):
        check = checks.get(request.path)
        if check is None or request.method != "POST":
            return await handler(request)

        secret, verify = check
        body = await request.read()
        error = verify(secret, request.headers, body)
        if error is not None:
            return _unauthorized(error)
        return await handler(request)

    return signature_middleware
