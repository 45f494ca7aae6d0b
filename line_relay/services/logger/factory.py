from __future__ import annotations

from line_relay.services.logger.interface import LoggingInterface
from line_relay.services.logger.json_logger import JsonLogger
from line_relay.services.logger.memory_logger import MemoryLogger
from line_relay.services.logger.pretty_logger import PrettyLogger

_IMPLEMENTATIONS: dict[str, type[LoggingInterface]] = {
    "pretty": PrettyLogger,
    "json": JsonLogger,
    "memory": MemoryLogger,
}


def _check_impl(name: str) -> type[LoggingInterface]:
    cls = _IMPLEMENTATIONS.get(name)
    if cls is None:
        raise ValueError(
            f"Unknown logger implementation: '{name}' "
            f"(available: {', '.join(_IMPLEMENTATIONS)})"
        )
    return cls


class LoggerFactory:
    """Hands out one shared logger per implementation, bound per component.

    Every component logs through the same underlying instance, so a
    ``memory`` factory collects the whole relay's entries in one list.
    """

    def __init__(self, default_impl: str = "pretty") -> None:
        _check_impl(default_impl)
        self._default_impl = default_impl
        self._instances: dict[str, LoggingInterface] = {}

    @property
    def default_impl(self) -> str:
        return self._default_impl

    def create(self, impl_name: str | None = None) -> LoggingInterface:
        name = impl_name or self._default_impl
        if name not in self._instances:
            self._instances[name] = _check_impl(name)()
        return self._instances[name]

    def for_component(self, component: str, impl_name: str | None = None) -> LoggingInterface:
        """Return the shared logger bound to ``component=<component>``."""
        return self.create(impl_name).bind(component=component)
