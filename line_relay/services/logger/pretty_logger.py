import os
import sys
from datetime import datetime
from typing import Any

from line_relay.services.logger.interface import LoggingInterface

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}
_COLORS = {
    "INFO": "\033[32m",   # green
    "WARN": "\033[33m",   # yellow
    "ERROR": "\033[31m",  # red
    "DEBUG": "\033[36m",  # cyan
}
_DIM = "\033[2m"
_RESET = "\033[0m"


def _format_value(value: Any) -> str:
    text = str(value)
    return repr(text) if (not text or " " in text) else text


class PrettyLogger(LoggingInterface):
    """Colorized one-line logger for running the relay in a terminal.

    ``component`` from a bound logger is shown as a prefix rather than as a
    key=value pair. ``LOG_LEVEL`` (debug/info/warn/error, default info)
    hides lower levels; queue-level debug lines are noisy under load.
    """

    def __init__(self) -> None:
        self._min_level = _LEVELS.get(os.environ.get("LOG_LEVEL", "info").upper(), _LEVELS["INFO"])

    def info(self, msg: str, **ctx: Any) -> None:
        self._log("INFO", msg, ctx)

    def warn(self, msg: str, **ctx: Any) -> None:
        self._log("WARN", msg, ctx)

    def error(self, msg: str, **ctx: Any) -> None:
        self._log("ERROR", msg, ctx)

    def debug(self, msg: str, **ctx: Any) -> None:
        self._log("DEBUG", msg, ctx)

    def _log(self, level: str, msg: str, ctx: dict[str, Any]) -> None:
        if _LEVELS[level] < self._min_level:
            return
        ctx = dict(ctx)
        component = ctx.pop("component", None)
        ts = datetime.now().astimezone().strftime("%H:%M:%S")
        prefix = f"{_DIM}{component}{_RESET} " if component else ""
        extra = "  " + " ".join(f"{k}={_format_value(v)}" for k, v in ctx.items()) if ctx else ""
        print(f"{_COLORS[level]}{ts} {level:5s}{_RESET} {prefix}{msg}{extra}", file=sys.stderr)
