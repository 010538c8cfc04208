"""Structured logging: one JSON object per record, correlated with traces."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
import sys
from typing import Any

import orjson

from kvsearch.observability.context import current_context


# Attributes every LogRecord has; anything else arrived through ``extra=``.
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_CORRELATION_FIELDS = ("trace_id", "span_id", "table", "operation")

_QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer")


def _encode_fallback(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, (Path, BaseException)):
        return str(value)
    return repr(value)


class JsonFormatter(logging.Formatter):
    """Render records as JSON lines with trace, span, table and operation fields."""

    SENSITIVE = frozenset({"password", "secret", "token", "authorization", "aws_access_key_id", "aws_secret_access_key"})
    MAX_MESSAGE_LEN = 2000
    MAX_EXTRA_LEN = 500

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": _clip(record.getMessage(), self.MAX_MESSAGE_LEN),
        }
        ctx = current_context()
        entry.update({name: ctx[name] for name in _CORRELATION_FIELDS if ctx.get(name)})

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for name, value in vars(record).items():
            if name in _RESERVED or name.startswith("_"):
                continue
            if name.lower() in self.SENSITIVE:
                entry[name] = "[REDACTED]"
            elif isinstance(value, str):
                entry[name] = _clip(value, self.MAX_EXTRA_LEN)
            else:
                entry[name] = value

        return orjson.dumps(entry, default=_encode_fallback).decode("utf-8")


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    *,
    logger_levels: dict[str, str] | None = None,
) -> None:
    """Replace the root handlers with a single stdout handler.

    Args:
        level: Root log level name
        json_output: Use :class:`JsonFormatter`; otherwise a plain text line format
        logger_levels: Per-logger overrides, e.g. ``{"kvsearch.search": "DEBUG"}``
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter() if json_output else logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.getLevelName(level.upper()))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name, logger_level in (logger_levels or {}).items():
        logging.getLogger(name).setLevel(logging.getLevelName(logger_level.upper()))
