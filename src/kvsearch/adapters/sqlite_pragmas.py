"""Connection PRAGMAs for the SQLite index store."""

from __future__ import annotations

import sqlite3


# Tuned for many small unconditional writes and point or range reads.
STORE_PRAGMAS: tuple[tuple[str, str | int], ...] = (
    ("busy_timeout", 30000),
    ("journal_mode", "WAL"),
    ("synchronous", "NORMAL"),
    ("cache_size", -65536),
    ("mmap_size", 128 * 1024 * 1024),
    ("temp_store", "MEMORY"),
)


def apply_store_pragmas(conn: sqlite3.Connection, overrides: dict[str, str | int] | None = None) -> None:
    """Apply :data:`STORE_PRAGMAS`, with ``overrides`` replacing individual values."""
    settings = dict(STORE_PRAGMAS)
    settings.update(overrides or {})
    for name, value in settings.items():
        conn.execute(f"PRAGMA {name} = {value}")
