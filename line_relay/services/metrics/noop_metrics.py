from line_relay.services.metrics.interface import MetricsInterface


class NoopMetrics(MetricsInterface):
    """Discards all metrics. The runner falls back to this when --metrics is not given."""

    def counter(self, name: str, value: float = 1, tags: dict[str, str] | None = None) -> None:
        pass

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        pass

    def histogram(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        pass
