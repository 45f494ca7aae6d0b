"""LINE Messaging API client built on aiohttp.

Config (via secrets):
    LINE_CHANNEL_ACCESS_TOKEN - channel access token (required)
    LINE_API_BASE_URL         - API root (default: https://api.line.me)
"""

from __future__ import annotations

from typing import Any

import aiohttp

from line_relay.services.chat.interface import ChatClientInterface
from line_relay.services.secrets.interface import SecretsInterface

_DEFAULT_BASE_URL = "https://api.line.me"
_TIMEOUT_SECONDS = 10


class ChatDeliveryError(RuntimeError):
    """The chat platform rejected or failed a send."""

    def __init__(self, endpoint: str, status: int, body: str) -> None:
        super().__init__(f"{endpoint} returned HTTP {status}: {body[:200]}")
        self.endpoint = endpoint
        self.status = status


class LineMessagingClient(ChatClientInterface):
    def __init__(self, secrets: SecretsInterface) -> None:
        self._token = secrets.get_or_default("LINE_CHANNEL_ACCESS_TOKEN", "")
        self._base_url = secrets.get_or_default("LINE_API_BASE_URL", _DEFAULT_BASE_URL).rstrip("/")
        self._session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        if not self._token:
            raise KeyError("Required secret 'LINE_CHANNEL_ACCESS_TOKEN' is not set")
        self._session = aiohttp.ClientSession(
            headers={"Authorization": f"Bearer {self._token}"},
            timeout=aiohttp.ClientTimeout(total=_TIMEOUT_SECONDS),
        )

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def push_message(self, to: str, messages: list[dict[str, Any]]) -> None:
        await self._post("/v2/bot/message/push", {"to": to, "messages": messages})

    async def reply_message(self, reply_token: str, messages: list[dict[str, Any]]) -> None:
        await self._post("/v2/bot/message/reply", {"replyToken": reply_token, "messages": messages})

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> None:
        if self._session is None:
            await self.connect()
        assert self._session is not None
        async with self._session.post(f"{self._base_url}{endpoint}", json=payload) as resp:
            if resp.status >= 300:
                raise ChatDeliveryError(endpoint, resp.status, await resp.text())
