from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from line_relay.services.chat.interface import ChatClientInterface


@dataclass
class SentMessage:
    to: str
    messages: list[dict[str, Any]]


class MemoryChatClient(ChatClientInterface):
    """Records pushes and replies in memory for test assertions.

    Set ``fail`` to make every send raise ``ConnectionError``.
    """

    def __init__(self) -> None:
        self.pushed: list[SentMessage] = []
        self.replies: list[SentMessage] = []
        self.fail = False

    async def push_message(self, to: str, messages: list[dict[str, Any]]) -> None:
        if self.fail:
            raise ConnectionError("chat platform unavailable")
        self.pushed.append(SentMessage(to, messages))

    async def reply_message(self, reply_token: str, messages: list[dict[str, Any]]) -> None:
        if self.fail:
            raise ConnectionError("chat platform unavailable")
        self.replies.append(SentMessage(reply_token, messages))

    def texts_to(self, to: str) -> list[str]:
        """Text bodies pushed to *to*, in send order."""
        return [
            m["text"]
            for sent in self.pushed
            if sent.to == to
            for m in sent.messages
            if m.get("type") == "text"
        ]
