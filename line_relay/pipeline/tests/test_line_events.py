"""Tests for LineEventHandler."""

from __future__ import annotations

from line_relay.pipeline.line_events import SETUP_ERROR, SETUP_IN_PROGRESS, LineEventHandler
from line_relay.pipeline.setup_sessions import SetupSessionManager
from line_relay.services.chat.memory_chat import MemoryChatClient
from line_relay.services.logger.memory_logger import MemoryLogger
from line_relay.services.store.memory_store import MemoryStore


class _BrokenStore(MemoryStore):
    async def set(self, key, value, ttl=None):
        raise ConnectionError("store down")


def _handler(store: MemoryStore | None = None) -> tuple[LineEventHandler, MemoryChatClient, SetupSessionManager]:
    store = store or MemoryStore()
    log = MemoryLogger()
    sessions = SetupSessionManager(store, log)
    chat = MemoryChatClient()
    return LineEventHandler(sessions, chat, log, "https://relay.example/"), chat, sessions


def _group_event(event_type: str, text: str | None = None, group_id: str = "G1") -> dict:
    event = {"type": event_type, "replyToken": "rt-1", "source": {"type": "group", "groupId": group_id}}
    if text is not None:
        event["message"] = {"type": "text", "text": text}
    return event


def _button_uri(message: dict) -> str:
    return message["contents"]["footer"]["contents"][0]["action"]["uri"]


async def test_join_replies_with_setup_link() -> None:
    handler, chat, sessions = _handler()
    assert await handler.handle_events([_group_event("join")]) == 1

    reply = chat.replies[0]
    assert reply.to == "rt-1"
    session = await sessions.get("G1")
    assert _button_uri(reply.messages[0]) == f"https://relay.example/setup/G1?token={session.token}"


async def test_setup_command_thai_and_english() -> None:
    handler, _, _ = _handler()
    english = await handler.build_reply(_group_event("message", " Setup "))
    assert english["type"] == "flex"
    handler2, _, _ = _handler()
    thai = await handler2.build_reply(_group_event("message", "ตั้งค่า"))
    assert thai["type"] == "flex"


async def test_setup_command_while_pending_reports_in_progress() -> None:
    handler, _, _ = _handler()
    await handler.build_reply(_group_event("join"))
    reply = await handler.build_reply(_group_event("message", "setup"))
    assert reply == {"type": "text", "text": SETUP_IN_PROGRESS}


async def test_other_events_are_ignored() -> None:
    handler, chat, _ = _handler()
    events = [
        _group_event("message", "hello"),
        _group_event("leave"),
        {"type": "join", "replyToken": "rt", "source": {"type": "user", "userId": "U1"}},
    ]
    assert await handler.handle_events(events) == 0
    assert chat.replies == []


async def test_store_failure_replies_with_error_text() -> None:
    handler, _, _ = _handler(_BrokenStore())
    reply = await handler.build_reply(_group_event("join"))
    assert reply == {"type": "text", "text": SETUP_ERROR}


async def test_failing_reply_does_not_stop_other_events() -> None:
    handler, chat, _ = _handler()
    chat.fail = True
    replied = await handler.handle_events([_group_event("join", group_id="G1"), _group_event("join", group_id="G2")])
    assert replied == 0
    assert handler.log.messages.count("Error processing LINE event") == 2
