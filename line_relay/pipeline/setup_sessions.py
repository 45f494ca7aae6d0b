"""One-time group setup sessions.

When the bot joins a group (or someone types the setup command) a session with
a random token is stored under ``setup:{group_id}`` for 30 minutes. The link
sent to the group carries the token; submitting the form with the sender id
and ProShip API key writes the ``user:{sender_id}`` mapping and marks the
session completed (kept one more hour so the link reports "already used").
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from line_relay.pipeline import keys
from line_relay.pipeline.routing import IdentityMapping
from line_relay.services.logger.interface import LoggingInterface
from line_relay.services.store.interface import StoreInterface

PENDING = "pending"
COMPLETED = "completed"

SESSION_NOT_FOUND = "session_not_found"
INVALID_TOKEN = "invalid_token"
SESSION_ALREADY_USED = "session_already_used"
SESSION_EXPIRED = "session_expired"

USER_ID_PREFIX = "user-"
USER_ID_MIN_LENGTH = 10
API_KEY_PREFIX = "eyJ"
API_KEY_MIN_LENGTH = 50


@dataclass
class SetupSession:
    token: str
    group_id: str
    status: str
    created_at: str
    expires_at: str

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) > datetime.fromisoformat(self.expires_at)

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING and not self.is_expired

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "groupId": self.group_id,
            "status": self.status,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SetupSession:
        return cls(
            token=data["token"],
            group_id=data["groupId"],
            status=data["status"],
            created_at=data["createdAt"],
            expires_at=data["expiresAt"],
        )


@dataclass
class SessionValidation:
    valid: bool
    reason: str | None = None
    session: SetupSession | None = None


def validate_credentials(user_id: str, api_key: str) -> str | None:
    """Return a field-level error code, or None when both values look right."""
    if not user_id.startswith(USER_ID_PREFIX) or len(user_id) < USER_ID_MIN_LENGTH:
        return "invalid_user_id"
    if not api_key.startswith(API_KEY_PREFIX) or len(api_key) < API_KEY_MIN_LENGTH:
        return "invalid_api_key"
    return None


class SetupSessionManager:
    def __init__(self, store: StoreInterface, log: LoggingInterface) -> None:
        self.store = store
        self.log = log

    async def create(self, group_id: str) -> str:
        """Start a session for *group_id*, replacing any previous one. Returns the token."""
        now = datetime.now(timezone.utc)
        session = SetupSession(
            token=str(uuid.uuid4()),
            group_id=group_id,
            status=PENDING,
            created_at=now.isoformat(),
            expires_at=(now + timedelta(seconds=keys.SETUP_TTL)).isoformat(),
        )
        key = keys.setup_key(group_id)
        await self.store.delete(key)
        await self.store.hset(key, session.to_dict())
        await self.store.expire(key, keys.SETUP_TTL)
        self.log.info("Setup session created", group_id=group_id, token=session.token[:8] + "...")
        return session.token

    async def get(self, group_id: str) -> SetupSession | None:
        data = await self.store.hgetall(keys.setup_key(group_id))
        if not data:
            return None
        try:
            return SetupSession.from_dict(data)
        except KeyError as exc:
            self.log.warn("Corrupt setup session", group_id=group_id, error=str(exc))
            return None

    async def validate(self, group_id: str, token: str | None) -> SessionValidation:
        session = await self.get(group_id)
        if session is None:
            return SessionValidation(valid=False, reason=SESSION_NOT_FOUND)
        if session.token != token:
            return SessionValidation(valid=False, reason=INVALID_TOKEN)
        if session.status != PENDING:
            return SessionValidation(valid=False, reason=SESSION_ALREADY_USED)
        if session.is_expired:
            return SessionValidation(valid=False, reason=SESSION_EXPIRED)
        return SessionValidation(valid=True, session=session)

    async def complete(self, group_id: str, user_id: str, api_key: str) -> IdentityMapping:
        """Persist the sender → group mapping and close the session. Store errors propagate."""
        mapping = IdentityMapping(
            group_id=group_id,
            api_key=api_key,
            setup_at=datetime.now(timezone.utc).isoformat(),
            setup_method="linebot",
        )
        await self.store.hset(keys.user_key(user_id), mapping.to_fields())

        if await self.get(group_id) is not None:
            key = keys.setup_key(group_id)
            await self.store.hset(key, {"status": COMPLETED})
            await self.store.expire(key, keys.SETUP_COMPLETED_TTL)

        self.log.info("Setup completed", group_id=group_id, user_id=user_id)
        return mapping
