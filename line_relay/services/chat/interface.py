from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ChatClientInterface(ABC):
    """Outbound chat platform messaging (LINE Messaging API in production)."""

    async def connect(self) -> None:
        """Open HTTP resources. Override as needed."""

    async def disconnect(self) -> None:
        """Release HTTP resources. Override as needed."""

    @abstractmethod
    async def push_message(self, to: str, messages: list[dict[str, Any]]) -> None:
        """Send *messages* to a user, group or room id. Raises on failure."""
        ...

    @abstractmethod
    async def reply_message(self, reply_token: str, messages: list[dict[str, Any]]) -> None:
        """Answer an inbound event using its one-time reply token. Raises on failure."""
        ...

    async def push_text(self, to: str, text: str) -> None:
        await self.push_message(to, [text_message(text)])


def text_message(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}
