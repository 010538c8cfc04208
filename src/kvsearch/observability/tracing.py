"""OpenTelemetry tracing for index maintenance and search."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode

from kvsearch.observability.context import set_span_id


if TYPE_CHECKING:
    from collections.abc import Iterator

    from opentelemetry.trace import Span, Tracer

logger = logging.getLogger(__name__)

_INSTRUMENTATION_NAME = "kvsearch"

_state: dict[str, Any] = {"provider": None}


def init_tracing(service_name: str = "kvsearch") -> TracerProvider:
    """Install an SDK tracer provider once per process and return it."""
    provider = _state["provider"]
    if provider is None:
        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
        trace.set_tracer_provider(provider)
        _state["provider"] = provider
        logger.info("Tracing initialized for service %s", service_name)
    return provider


def configure_trace_exporter(endpoint: str | None, provider: TracerProvider | None = None) -> None:
    """Batch-export spans to an OTLP/HTTP collector. No-op without an endpoint."""
    if not endpoint:
        return
    provider = provider or init_tracing()
    try:
        exporter = OTLPSpanExporter(endpoint=endpoint)
    except Exception as exc:
        logger.error("Could not create OTLP span exporter for %s: %s", endpoint, exc, exc_info=True)
        return
    provider.add_span_processor(BatchSpanProcessor(exporter))
    logger.info("Exporting spans to %s", endpoint)


def get_tracer() -> Tracer:
    """Tracer from the installed provider, or the API's no-op tracer before :func:`init_tracing`."""
    provider = _state["provider"]
    if provider is None:
        return trace.get_tracer(_INSTRUMENTATION_NAME)
    return provider.get_tracer(_INSTRUMENTATION_NAME)


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span]:
    """Run the block in a new span; exceptions mark the span as failed and propagate."""
    with get_tracer().start_as_current_span(
        name,
        kind=kind,
        attributes=attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        span_context = span.get_span_context()
        if span_context.is_valid:
            set_span_id(format(span_context.span_id, "016x"))
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise
