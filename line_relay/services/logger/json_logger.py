"""JSON-lines logger for hosted deployments.

Writes one JSON object per entry to stderr so the platform's log shipper can
index ``level``, ``msg`` and every context key without parsing free text.
"""

from __future__ import annotations

import json
import os
import sys
from datetime import datetime, timezone
from typing import Any

from line_relay.services.logger.interface import LoggingInterface


class JsonLogger(LoggingInterface):
    def __init__(self) -> None:
        self._service = os.environ.get("LOG_SERVICE", "line_relay")

    def info(self, msg: str, **ctx: Any) -> None:
        self._emit("INFO", msg, ctx)

    def warn(self, msg: str, **ctx: Any) -> None:
        self._emit("WARN", msg, ctx)

    def error(self, msg: str, **ctx: Any) -> None:
        self._emit("ERROR", msg, ctx)

    def debug(self, msg: str, **ctx: Any) -> None:
        self._emit("DEBUG", msg, ctx)

    def _emit(self, level: str, msg: str, ctx: dict[str, Any]) -> None:
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "service": self._service,
            "msg": msg,
            **ctx,
        }
        # default=str: context values such as exceptions are logged by repr
        print(json.dumps(entry, default=str, ensure_ascii=False), file=sys.stderr)
