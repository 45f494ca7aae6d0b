"""LINE callback events: bot joins and the setup command.

Both reply in the group with a link to the setup form. Everything else is
ignored so the bot stays quiet in busy groups.
"""

from __future__ import annotations

from typing import Any

from line_relay.pipeline.setup_sessions import SetupSessionManager
from line_relay.services.chat.interface import ChatClientInterface, text_message
from line_relay.services.logger.interface import LoggingInterface

SETUP_COMMANDS = frozenset({"setup", "ตั้งค่า"})

SETUP_IN_PROGRESS = (
    '⚠️ มีลิงก์ตั้งค่าที่ยังใช้งานอยู่!\n\n'
    'กรุณาใช้ลิงก์เดิม หรือรอ 30 นาที แล้วพิมพ์ "ตั้งค่า" ใหม่'
)
SETUP_ERROR = '❌ เกิดข้อผิดพลาด!\n\nกรุณาลองพิมพ์ "ตั้งค่า" ใหม่อีกครั้ง'


def setup_link_message(setup_url: str, welcome: bool) -> dict[str, Any]:
    """Flex bubble with a single button opening *setup_url*."""
    title = "🎉 ยินดีต้อนรับ!" if welcome else "🚀 พร้อมตั้งค่าแล้ว!"
    alt_text = "🎉 ยินดีต้อนรับ! คลิกเพื่อตั้งค่าระบบแจ้งเตือน" if welcome else "ลิงก์ตั้งค่าระบบแจ้งเตือน"
    return {
        "type": "flex",
        "altText": alt_text,
        "contents": {
            "type": "bubble",
            "body": {
                "type": "box",
                "layout": "vertical",
                "contents": [
                    {"type": "text", "text": title, "weight": "bold", "size": "xl",
                     "color": "#06C755", "align": "center"},
                    {"type": "separator", "margin": "xl"},
                    {"type": "text", "text": "กรอกข้อมูล 2 อย่างเพื่อเริ่มใช้งาน:", "size": "md",
                     "margin": "xl", "align": "center"},
                    {"type": "text", "text": "1️⃣ รหัสผู้ใช้ ProShip", "size": "sm", "margin": "md"},
                    {"type": "text", "text": "2️⃣ รหัส API Key", "size": "sm", "margin": "sm"},
                ],
            },
            "footer": {
                "type": "box",
                "layout": "vertical",
                "contents": [
                    {
                        "type": "button",
                        "style": "primary",
                        "color": "#06C755",
                        "action": {"type": "uri", "label": "👉 คลิกที่นี่เพื่อตั้งค่า", "uri": setup_url},
                    },
                    {"type": "text", "text": "⚠️ ลิงก์นี้ใช้ได้ 30 นาทีเท่านั้น", "size": "xs",
                     "color": "#FF5551", "align": "center", "margin": "sm"},
                ],
            },
        },
    }


class LineEventHandler:
    def __init__(
        self,
        sessions: SetupSessionManager,
        chat: ChatClientInterface,
        log: LoggingInterface,
        base_url: str,
    ) -> None:
        self.sessions = sessions
        self.chat = chat
        self.log = log
        self.base_url = base_url.rstrip("/")

    def setup_url(self, group_id: str, token: str) -> str:
        return f"{self.base_url}/setup/{group_id}?token={token}"

    async def handle_events(self, events: list[dict[str, Any]]) -> int:
        """Process every event; one failing event does not stop the rest. Returns replies sent."""
        replied = 0
        for event in events:
            try:
                reply = await self.build_reply(event)
                if reply is not None and event.get("replyToken"):
                    await self.chat.reply_message(event["replyToken"], [reply])
                    replied += 1
            except Exception as exc:
                self.log.error("Error processing LINE event", event_type=event.get("type"), error=str(exc))
        return replied

    async def build_reply(self, event: dict[str, Any]) -> dict[str, Any] | None:
        source = event.get("source") or {}
        if source.get("type") != "group" or not source.get("groupId"):
            return None
        group_id = source["groupId"]

        event_type = event.get("type")
        if event_type == "join":
            self.log.info("Bot joined group, starting setup", group_id=group_id)
            return await self._setup_reply(group_id, welcome=True)

        if event_type == "message":
            message = event.get("message") or {}
            text = (message.get("text") or "").strip().lower()
            if message.get("type") == "text" and text in SETUP_COMMANDS:
                existing = await self.sessions.get(group_id)
                if existing is not None and existing.is_pending:
                    return text_message(SETUP_IN_PROGRESS)
                return await self._setup_reply(group_id, welcome=False)
            return None

        self.log.debug("Unhandled LINE event type", event_type=event_type)
        return None

    async def _setup_reply(self, group_id: str, welcome: bool) -> dict[str, Any]:
        try:
            token = await self.sessions.create(group_id)
        except Exception as exc:
            self.log.error("Failed to create setup session", group_id=group_id, error=str(exc))
            return text_message(SETUP_ERROR)
        return setup_link_message(self.setup_url(group_id, token), welcome)
