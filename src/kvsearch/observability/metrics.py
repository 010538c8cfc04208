"""Index and search metrics.

Each metric is a Prometheus collector (scraped through :func:`get_metrics`)
paired with an OpenTelemetry instrument of the same name, so the numbers are
available both to a Prometheus scrape and to an OTLP metrics pipeline.
"""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING, Any, Literal

from opentelemetry import metrics as otel_metrics
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Iterator

MetricKind = Literal["counter", "histogram", "gauge"]

_INSTRUMENTATION_NAME = "kvsearch"

_state: dict[str, Any] = {"provider": None, "service_name": "kvsearch", "exporting": False, "generation": 0}


def init_metrics(service_name: str = "kvsearch", metric_readers: list[MetricReader] | None = None) -> MeterProvider:
    """Install an SDK meter provider once per process and return it."""
    provider = _state["provider"]
    if provider is None:
        provider = MeterProvider(
            resource=Resource.create({"service.name": service_name}),
            metric_readers=metric_readers or [],
        )
        otel_metrics.set_meter_provider(provider)
        _state["provider"] = provider
        _state["service_name"] = service_name
    return provider


def configure_metrics_exporter(endpoint: str | None, *, service_name: str = "kvsearch") -> None:
    """Push metrics to an OTLP/HTTP collector. No-op without an endpoint.

    The SDK binds metric readers at provider construction, so an already
    installed provider is replaced and instruments are re-created on it.
    """
    if not endpoint or _state["exporting"]:
        return
    if endpoint.endswith("/v1/traces"):
        endpoint = endpoint.removesuffix("/v1/traces") + "/v1/metrics"
    reader = PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=endpoint))
    if _state["provider"] is None:
        init_metrics(service_name, [reader])
    else:
        provider = MeterProvider(
            resource=Resource.create({"service.name": _state["service_name"]}),
            metric_readers=[reader],
        )
        otel_metrics.set_meter_provider(provider)
        _state["provider"] = provider
        _state["generation"] += 1
    _state["exporting"] = True


def _meter():
    provider = _state["provider"] or init_metrics()
    return provider.get_meter(_INSTRUMENTATION_NAME)


class MetricBridge:
    """A Prometheus collector and its OpenTelemetry twin, updated together."""

    def __init__(self, kind: MetricKind, name: str, description: str, labelnames: tuple[str, ...], **prom_kwargs: Any):
        collector = {"counter": Counter, "histogram": Histogram, "gauge": Gauge}[kind]
        self.kind = kind
        self.name = name
        self.description = description
        self.prom = collector(name, description, labelnames, **prom_kwargs)
        self._instrument: Any = None
        self._generation = -1
        self._gauge_values: dict[tuple[tuple[str, str], ...], float] = {}

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def _otel(self) -> Any:
        if self._instrument is None or self._generation != _state["generation"]:
            meter = _meter()
            self._generation = _state["generation"]
            if self.kind == "counter":
                self._instrument = meter.create_counter(self.name, description=self.description)
            elif self.kind == "histogram":
                self._instrument = meter.create_histogram(self.name, description=self.description)
            else:
                # OTel gauges are observable; an up-down counter fed with deltas tracks set() calls.
                self._instrument = meter.create_up_down_counter(self.name, description=self.description)
        return self._instrument

    def record(self, labels: dict[str, str], value: float) -> None:
        child = self.prom.labels(**labels)
        if self.kind == "counter":
            child.inc(value)
            self._otel().add(value, labels)
        elif self.kind == "histogram":
            child.observe(value)
            self._otel().record(value, labels)
        else:
            child.set(value)
            key = tuple(sorted(labels.items()))
            delta = value - self._gauge_values.get(key, 0.0)
            self._gauge_values[key] = value
            if delta:
                self._otel().add(delta, labels)


class _BoundMetric:
    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.record(self._labels, amount)

    def observe(self, value: float) -> None:
        self._bridge.record(self._labels, value)

    def set(self, value: float) -> None:
        self._bridge.record(self._labels, value)


EVENTS_PROCESSED = MetricBridge(
    "counter", "kvsearch_change_events_total", "Change events applied to the index", ("table", "event")
)
POSTINGS_WRITTEN = MetricBridge("counter", "kvsearch_postings_written_total", "Postings written to the index", ("table",))
POSTINGS_DELETED = MetricBridge(
    "counter", "kvsearch_postings_deleted_total", "Postings deleted from the index", ("table",)
)
SEARCH_LATENCY = MetricBridge(
    "histogram",
    "kvsearch_search_latency_seconds",
    "Search query latency",
    ("table",),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)
SEARCH_CAPACITY = MetricBridge(
    "histogram",
    "kvsearch_search_capacity_units",
    "Read capacity units consumed per search",
    ("table",),
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 50.0, 100.0),
)
INDEX_DOC_COUNT = MetricBridge(
    "gauge", "kvsearch_index_document_count", "Documents in the index as of the last metadata read", ("table",)
)


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Iterator[None]:
    """Observe the wall time of the block, including when it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    """Prometheus text exposition of the default registry."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
