from __future__ import annotations

from abc import ABC, abstractmethod


class MetricsInterface(ABC):
    """Counters, gauges and histograms for relay outcomes and batch delivery.

    Tags become Prometheus labels, so keep their values low-cardinality
    (outcome names, reasons). Never tag with group or order ids.
    """

    @abstractmethod
    def counter(self, name: str, value: float = 1, tags: dict[str, str] | None = None) -> None:
        ...

    @abstractmethod
    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None: ...

    @abstractmethod
    def histogram(self, name: str, value: float, tags: dict[str, str] | None = None) -> None: ...
