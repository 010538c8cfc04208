"""Process-wide observability bootstrap driven by :class:`kvsearch.config.Settings`."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from kvsearch.observability.logging import configure_logging
from kvsearch.observability.metrics import configure_metrics_exporter, init_metrics
from kvsearch.observability.tracing import configure_trace_exporter, init_tracing


if TYPE_CHECKING:
    from kvsearch.config import Settings

logger = logging.getLogger(__name__)


def configure_observability(settings: Settings, *, logger_levels: dict[str, str] | None = None) -> None:
    """Install logging, then metrics and tracing, with OTLP export when an endpoint is set.

    Call once at process start, before the first :class:`SearchIndex` is used.
    """
    configure_logging(level=settings.log_level, json_output=settings.log_json, logger_levels=logger_levels)

    configure_metrics_exporter(settings.otlp_endpoint, service_name=settings.service_name)
    init_metrics(service_name=settings.service_name)
    provider = init_tracing(service_name=settings.service_name)
    configure_trace_exporter(settings.otlp_endpoint, provider)

    logger.info(
        "Observability configured (service=%s, otlp=%s)",
        settings.service_name,
        settings.otlp_endpoint or "disabled",
    )
