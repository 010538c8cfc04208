"""Logging, tracing and metrics for kvsearch."""

from kvsearch.observability.context import bind_index_context, current_context
from kvsearch.observability.logging import JsonFormatter, configure_logging
from kvsearch.observability.metrics import (
    EVENTS_PROCESSED,
    INDEX_DOC_COUNT,
    POSTINGS_DELETED,
    POSTINGS_WRITTEN,
    SEARCH_CAPACITY,
    SEARCH_LATENCY,
    MetricBridge,
    configure_metrics_exporter,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from kvsearch.observability.setup import configure_observability
from kvsearch.observability.tracing import configure_trace_exporter, create_span, get_tracer, init_tracing


__all__ = [
    "EVENTS_PROCESSED",
    "INDEX_DOC_COUNT",
    "POSTINGS_DELETED",
    "POSTINGS_WRITTEN",
    "SEARCH_CAPACITY",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "MetricBridge",
    "bind_index_context",
    "configure_logging",
    "configure_metrics_exporter",
    "configure_observability",
    "configure_trace_exporter",
    "create_span",
    "current_context",
    "get_metrics",
    "get_metrics_content_type",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "track_latency",
]
