"""Unit tests for logging, tracing and metrics helpers."""

import logging

import orjson
import pytest

from kvsearch.config import Settings
from kvsearch.observability import configure_observability
from kvsearch.observability.context import bind_index_context, current_context
from kvsearch.observability.logging import JsonFormatter, configure_logging
from kvsearch.observability.metrics import SEARCH_LATENCY, get_metrics, track_latency
from kvsearch.observability.tracing import create_span


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("kvsearch.search.indexer", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestJsonFormatter:
    def test_includes_index_context(self):
        with bind_index_context("messages-index", "search") as ctx:
            entry = orjson.loads(JsonFormatter().format(_record("indexed")))

        assert entry["message"] == "indexed"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "kvsearch.search.indexer"
        assert entry["trace_id"] == ctx["trace_id"]
        assert len(entry["trace_id"]) == 32
        assert entry["table"] == "messages-index"
        assert entry["operation"] == "search"

    def test_context_is_unbound_after_the_block(self):
        with bind_index_context("messages-index", "process_records"):
            pass
        assert "table" not in current_context()

    def test_redacts_secret_extras(self):
        entry = orjson.loads(JsonFormatter().format(_record("login", aws_secret_access_key="hunter2", region="eu")))

        assert entry["aws_secret_access_key"] == "[REDACTED]"
        assert entry["region"] == "eu"

    def test_truncates_long_messages(self):
        entry = orjson.loads(JsonFormatter().format(_record("x" * 5000)))
        assert len(entry["message"]) == JsonFormatter.MAX_MESSAGE_LEN + 3

    def test_serializes_bytes_extras(self):
        entry = orjson.loads(JsonFormatter().format(_record("posting", sort_key=b"abc")))
        assert entry["sort_key"] == "abc"


@pytest.mark.unit
def test_configure_logging_applies_overrides():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging("warning", json_output=False, logger_levels={"kvsearch.search": "debug"})

        assert root.level == logging.WARNING
        assert logging.getLogger("kvsearch.search").level == logging.DEBUG
        assert logging.getLogger("botocore").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
        logging.getLogger("kvsearch.search").setLevel(logging.NOTSET)


@pytest.mark.unit
class TestTracingAndMetrics:
    def test_create_span_reraises(self):
        with pytest.raises(RuntimeError, match="boom"), create_span("kvsearch.test", attributes={"kvsearch.table": "t"}):
            raise RuntimeError("boom")

    def test_track_latency_records_observation(self):
        with track_latency(SEARCH_LATENCY, table="latency-test"):
            pass

        assert b'kvsearch_search_latency_seconds_count{table="latency-test"} 1.0' in get_metrics()


@pytest.mark.unit
def test_configure_observability_from_settings():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_observability(Settings(_env_file=None, log_level="ERROR", log_json=True))

        assert root.level == logging.ERROR
        assert isinstance(root.handlers[-1].formatter, JsonFormatter)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
