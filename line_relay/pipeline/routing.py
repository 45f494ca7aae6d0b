"""Sender identity → LINE group and ProShip credential.

Resolvers are tried in order and the first non-empty field wins. In
production the order is: the store (written by the setup flow), then the
static mapping file loaded at startup. An unmapped sender resolves to
``None``; there is no default group.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from line_relay.pipeline import keys
from line_relay.services.logger.interface import LoggingInterface
from line_relay.services.store.interface import StoreInterface


@dataclass
class IdentityMapping:
    group_id: str | None = None
    api_key: str | None = None
    setup_at: str | None = None
    setup_method: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "groupId": self.group_id,
            "apiKey": self.api_key,
            "setupAt": self.setup_at,
            "setupMethod": self.setup_method,
        }

    def to_fields(self) -> dict[str, str]:
        """Hash fields for the store record; unset attributes are left out."""
        return {name: value for name, value in self.to_dict().items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IdentityMapping:
        return cls(
            group_id=data.get("groupId"),
            api_key=data.get("apiKey"),
            setup_at=data.get("setupAt"),
            setup_method=data.get("setupMethod"),
        )


class IdentityResolver(ABC):
    name: str = "resolver"

    @abstractmethod
    async def resolve(self, sender_id: str) -> IdentityMapping | None: ...

    @abstractmethod
    async def senders(self) -> list[str]:
        """Every sender id this resolver knows about."""
        ...


class StoreIdentityResolver(IdentityResolver):
    name = "store"

    def __init__(self, store: StoreInterface) -> None:
        self.store = store

    async def resolve(self, sender_id: str) -> IdentityMapping | None:
        data = await self.store.hgetall(keys.user_key(sender_id))
        if not data:
            return None
        return IdentityMapping.from_dict(data)

    async def save(self, sender_id: str, mapping: IdentityMapping) -> None:
        await self.store.hset(keys.user_key(sender_id), mapping.to_fields())

    async def senders(self) -> list[str]:
        found = await self.store.scan(keys.USER_PREFIX + "*")
        return sorted(key[len(keys.USER_PREFIX):] for key in found)


@dataclass
class StaticMapping:
    groups: dict[str, list[str]]
    user_api_keys: dict[str, str]


class StaticIdentityResolver(IdentityResolver):
    """Membership lookup in ``{"groups": {gid: [sender, ...]}, "userApiKeys": {sender: key}}``."""

    name = "static"

    def __init__(self, mapping: StaticMapping) -> None:
        self.mapping = mapping

    async def resolve(self, sender_id: str) -> IdentityMapping | None:
        group_id = next(
            (gid for gid, members in self.mapping.groups.items() if sender_id in members),
            None,
        )
        api_key = self.mapping.user_api_keys.get(sender_id)
        if group_id is None and api_key is None:
            return None
        return IdentityMapping(group_id=group_id, api_key=api_key, setup_method="static")

    async def senders(self) -> list[str]:
        found = {sender for members in self.mapping.groups.values() for sender in members}
        found.update(self.mapping.user_api_keys)
        return sorted(found)


def load_static_mapping(path: str | Path | None, log: LoggingInterface) -> StaticMapping:
    """Read the mapping file. A missing or invalid file yields an empty mapping."""
    empty = StaticMapping(groups={}, user_api_keys={})
    if not path:
        return empty
    try:
        doc = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        log.warn("Static mapping file not found", path=str(path))
        return empty
    except (OSError, ValueError) as exc:
        log.error("Static mapping file unreadable", path=str(path), error=str(exc))
        return empty

    if not isinstance(doc, dict):
        log.error("Static mapping file must hold a JSON object", path=str(path))
        return empty
    groups = doc.get("groups") or {}
    user_api_keys = doc.get("userApiKeys") or {}
    mapping = StaticMapping(
        groups={gid: list(members) for gid, members in groups.items() if isinstance(members, list)},
        user_api_keys={uid: key for uid, key in user_api_keys.items() if isinstance(key, str)},
    )
    log.info("Static mapping loaded", path=str(path), groups=len(mapping.groups),
             api_keys=len(mapping.user_api_keys))
    return mapping


class IdentityRouter:
    def __init__(self, resolvers: list[IdentityResolver], log: LoggingInterface) -> None:
        self.resolvers = resolvers
        self.log = log

    async def resolve_group(self, sender_id: str | None) -> str | None:
        return await self._first(sender_id, "group_id")

    async def resolve_credential(self, sender_id: str | None) -> str | None:
        return await self._first(sender_id, "api_key")

    async def _first(self, sender_id: str | None, attr: str) -> str | None:
        if not sender_id:
            return None
        for resolver in self.resolvers:
            try:
                mapping = await resolver.resolve(sender_id)
            except Exception as exc:
                self.log.error("Identity resolver failed", resolver=resolver.name,
                               sender_id=sender_id, error=str(exc))
                continue
            value = getattr(mapping, attr) if mapping else None
            if value:
                return value
        return None

    async def groups_report(self) -> dict[str, Any]:
        """Senders grouped by the group they resolve to.

        Each sender's group and credential are picked the same way as for
        routing: the first resolver with a non-empty value wins. Senders known
        only by credential are listed under ``unrouted``.
        """
        found: dict[str, dict[str, IdentityMapping]] = {}
        for resolver in self.resolvers:
            try:
                sender_ids = await resolver.senders()
            except Exception as exc:
                self.log.error("Identity resolver listing failed", resolver=resolver.name, error=str(exc))
                continue
            for sender_id in sender_ids:
                try:
                    mapping = await resolver.resolve(sender_id)
                except Exception as exc:
                    self.log.warn("Unreadable identity record", resolver=resolver.name,
                                  sender_id=sender_id, error=str(exc))
                    continue
                if mapping is not None:
                    found.setdefault(sender_id, {})[resolver.name] = mapping

        groups: dict[str, list[dict[str, Any]]] = {}
        unrouted: list[dict[str, Any]] = []
        for sender_id in sorted(found):
            by_resolver = found[sender_id]
            group_source = next(
                (r.name for r in self.resolvers if by_resolver.get(r.name) and by_resolver[r.name].group_id),
                None,
            )
            has_api_key = any(m.api_key for m in by_resolver.values())
            if group_source is None:
                unrouted.append({"sender_id": sender_id, "has_api_key": has_api_key})
                continue
            groups.setdefault(by_resolver[group_source].group_id, []).append(
                {"sender_id": sender_id, "has_api_key": has_api_key, "source": group_source}
            )

        return {
            "group_count": len(groups),
            "sender_count": sum(len(members) for members in groups.values()),
            "groups": [
                {"group_id": gid, "sender_count": len(members), "senders": members}
                for gid, members in sorted(groups.items())
            ],
            "unrouted": unrouted,
        }
