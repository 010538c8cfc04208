"""Per-task correlation state shared by log records and spans.

The state lives in a ``ContextVar`` so concurrent batches and searches on one
event loop never see each other's ids. :func:`bind_index_context` scopes the
table and operation of the work in progress; log lines emitted inside the
block carry them.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
import secrets


_correlation: ContextVar[dict[str, str] | None] = ContextVar("kvsearch_correlation", default=None)


def new_trace_id() -> str:
    return secrets.token_hex(16)


def new_span_id() -> str:
    return secrets.token_hex(8)


def current_context() -> dict[str, str]:
    """Return the active correlation fields, starting a fresh trace when none is bound."""
    ctx = _correlation.get()
    if not ctx or "trace_id" not in ctx:
        ctx = {"trace_id": new_trace_id(), "span_id": new_span_id()}
        _correlation.set(ctx)
    return ctx


def set_span_id(span_id: str) -> None:
    _correlation.set({**current_context(), "span_id": span_id})


@contextmanager
def bind_index_context(table: str, operation: str, **fields: str) -> Iterator[dict[str, str]]:
    """Attach ``table`` and ``operation`` (plus extra fields) for the duration of the block."""
    ctx = {**current_context(), "table": table, "operation": operation, **fields}
    token = _correlation.set(ctx)
    try:
        yield ctx
    finally:
        _correlation.reset(token)
