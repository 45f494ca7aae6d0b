"""Prometheus metrics implementation using prometheus_client."""

from __future__ import annotations

from typing import Any

from line_relay.services.metrics.interface import MetricsInterface
from line_relay.services.secrets.interface import SecretsInterface


class PrometheusMetrics(MetricsInterface):
    """Exposes relay metrics on a Prometheus scrape endpoint.

    Config (via secrets):
        METRICS_PROMETHEUS_PORT - Port serving /metrics (default: 9091). 0 or
                                  empty keeps the registry but serves nothing.
        METRICS_PREFIX          - Prepended to every metric name
                                  (default: ``line_relay_``).

    Each instance owns its own ``CollectorRegistry``, so several relays (or
    tests) in one process never collide on metric names.
    """

    def __init__(self, secrets: SecretsInterface) -> None:
        import prometheus_client as prom

        self._prom = prom
        self.registry = prom.CollectorRegistry()
        self._prefix = secrets.get_or_default("METRICS_PREFIX", "line_relay_")
        self._metrics: dict[tuple[str, str, tuple[str, ...]], Any] = {}

        port_str = secrets.get_or_default("METRICS_PROMETHEUS_PORT", "9091")
        self.port = int(port_str) if port_str else 0
        if self.port:
            prom.start_http_server(self.port, registry=self.registry)

    def metric_name(self, name: str) -> str:
        return self._prefix + name.replace("-", "_").replace(".", "_")

    def _series(self, kind: str, name: str, tags: dict[str, str] | None) -> Any:
        safe = self.metric_name(name)
        label_names = tuple(sorted(tags)) if tags else ()
        key = (kind, safe, label_names)
        if key not in self._metrics:
            cls = {"counter": self._prom.Counter, "gauge": self._prom.Gauge,
                   "histogram": self._prom.Histogram}[kind]
            self._metrics[key] = cls(safe, safe, label_names, registry=self.registry)
        metric = self._metrics[key]
        if label_names:
            return metric.labels(*(tags[n] for n in label_names))
        return metric

    def counter(self, name: str, value: float = 1, tags: dict[str, str] | None = None) -> None:
        self._series("counter", name, tags).inc(value)

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self._series("gauge", name, tags).set(value)

    def histogram(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self._series("histogram", name, tags).observe(value)
