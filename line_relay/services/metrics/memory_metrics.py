from __future__ import annotations

from line_relay.services.metrics.interface import MetricsInterface

TagKey = tuple[tuple[str, str], ...]


def _tag_key(tags: dict[str, str] | None) -> TagKey:
    return tuple(sorted((tags or {}).items()))


class MemoryMetrics(MetricsInterface):
    """Keeps metric values in memory so tests can assert on them.

    ``counters`` sums every sample of a name regardless of tags;
    ``count(name, **tags)`` reads a single tagged series.
    """

    def __init__(self) -> None:
        self.counters: dict[str, float] = {}
        self.gauges: dict[str, float] = {}
        self.histograms: dict[str, list[float]] = {}
        self._series: dict[tuple[str, TagKey], float] = {}

    def counter(self, name: str, value: float = 1, tags: dict[str, str] | None = None) -> None:
        self.counters[name] = self.counters.get(name, 0) + value
        key = (name, _tag_key(tags))
        self._series[key] = self._series.get(key, 0) + value

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self.gauges[name] = value

    def histogram(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self.histograms.setdefault(name, []).append(value)

    def count(self, name: str, **tags: str) -> float:
        return self._series.get((name, _tag_key(tags)), 0)
