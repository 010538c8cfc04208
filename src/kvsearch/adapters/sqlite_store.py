"""SQLite-backed index store.

Embedded implementation of :class:`AbstractIndexStore` for local runs and
tests. The table mirrors the DynamoDB layout:

- WITHOUT ROWID table clustered on ``(p, s)`` so range queries over one
  token partition read contiguous pages in sort-key order
- secondary index on ``k`` (keys-index) for delete-by-document lookups
- secondary index on ``(p, h)`` (hash-index)
- non-key attributes (metadata counters) in a JSON column

SQLite calls block, so every public coroutine runs its work in a thread via
``asyncio.to_thread``; one connection is shared and serialized by a lock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
import logging
import math
from pathlib import Path
import re
import sqlite3
import threading
import time
from typing import Any, TypeVar

import orjson

from kvsearch.adapters.index_store import AbstractIndexStore, Item, ItemRead, QueryPage, validate_batch
from kvsearch.adapters.sqlite_pragmas import apply_store_pragmas
from kvsearch.errors import ResourceInUseError, ResourceNotFoundError


logger = logging.getLogger(__name__)

T = TypeVar("T")

_TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,255}$")
_KEY_COLUMNS = ("p", "s", "k", "h")

# Maximum retries for self-healing connection attempts
_MAX_CONNECT_RETRIES = 3
_RETRY_DELAY_SECONDS = 0.5

# DynamoDB-style read accounting: 0.5 units per started 4 KB (eventually consistent)
_READ_UNIT_BYTES = 4096
_READ_UNIT_COST = 0.5


def _value_size(value: Any) -> int:
    if isinstance(value, bytes | bytearray | memoryview):
        return len(value)
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    return len(str(value))


def _item_size(item: Item) -> int:
    return sum(len(name) + _value_size(value) for name, value in item.items())


def _read_capacity(items: Sequence[Item]) -> float:
    total = sum(_item_size(item) for item in items)
    return max(1, math.ceil(total / _READ_UNIT_BYTES)) * _READ_UNIT_COST


def _row_to_item(row: sqlite3.Row | tuple) -> Item:
    p, s, k, h, attrs = row
    item: Item = {"p": p, "s": bytes(s)}
    if k is not None:
        item["k"] = k
    if h is not None:
        item["h"] = bytes(h)
    if attrs:
        item.update(orjson.loads(attrs))
    return item


def _item_to_row(item: Item) -> tuple[str, bytes, str | None, bytes | None, bytes | None]:
    extra = {name: value for name, value in item.items() if name not in _KEY_COLUMNS}
    h = item.get("h")
    return (
        item["p"],
        bytes(item["s"]),
        item.get("k"),
        bytes(h) if h is not None else None,
        orjson.dumps(extra) if extra else None,
    )


class SqliteIndexStore(AbstractIndexStore):
    """Index table stored in a SQLite database file (or ``:memory:``)."""

    DEFAULT_PAGE_SIZE = 1000

    def __init__(self, db_path: str | Path, table_name: str, *, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        if not _TABLE_NAME_PATTERN.match(table_name):
            raise ValueError(f"Invalid table name '{table_name}'")
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.db_path = Path(db_path)
        self.table_name = table_name
        self.page_size = page_size
        self._table = f'"{table_name}"'
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        """Connect with a short retry loop for transient filesystem errors."""
        last_error: sqlite3.Error | None = None
        for attempt in range(_MAX_CONNECT_RETRIES):
            try:
                if str(self.db_path) != ":memory:":
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
                apply_store_pragmas(conn)
                return conn
            except sqlite3.Error as exc:
                last_error = exc
                if attempt < _MAX_CONNECT_RETRIES - 1:
                    delay = _RETRY_DELAY_SECONDS * (2**attempt)
                    logger.warning(
                        "SQLite connect attempt %d/%d failed for %s: %s. Retrying in %.1fs...",
                        attempt + 1,
                        _MAX_CONNECT_RETRIES,
                        self.db_path,
                        exc,
                        delay,
                    )
                    time.sleep(delay)
        assert last_error is not None
        raise last_error

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = self._connect()
        return self._conn

    async def _run(self, func: Callable[[sqlite3.Connection], T]) -> T:
        def _locked() -> T:
            with self._lock:
                try:
                    return func(self._connection())
                except sqlite3.OperationalError as exc:
                    if "no such table" in str(exc):
                        raise ResourceNotFoundError(f"Table not found: {self.table_name}") from exc
                    raise

        return await asyncio.to_thread(_locked)

    @contextmanager
    def _transaction(self, conn: sqlite3.Connection, *, immediate: bool = False) -> Iterator[None]:
        conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        try:
            yield
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def _table_exists(self, conn: sqlite3.Connection) -> bool:
        row = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (self.table_name,),
        ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Table lifecycle
    # ------------------------------------------------------------------

    async def create_table(self, *, if_not_exists: bool = False, **table_properties: Any) -> None:
        if table_properties:
            logger.debug("Ignoring table properties for SQLite store: %s", sorted(table_properties))

        def _create(conn: sqlite3.Connection) -> None:
            if self._table_exists(conn):
                if if_not_exists:
                    return
                raise ResourceInUseError(f"Table already exists: {self.table_name}")
            with self._transaction(conn):
                conn.execute(
                    f"""
                    CREATE TABLE {self._table} (
                        p TEXT NOT NULL,
                        s BLOB NOT NULL,
                        k TEXT,
                        h BLOB,
                        attrs BLOB,
                        PRIMARY KEY (p, s)
                    ) WITHOUT ROWID
                    """
                )
                conn.execute(f'CREATE INDEX "{self.table_name}__keys_index" ON {self._table} (k) WHERE k IS NOT NULL')
                conn.execute(f'CREATE INDEX "{self.table_name}__hash_index" ON {self._table} (p, h)')
            logger.info("Created index table %s in %s", self.table_name, self.db_path)

        await self._run(_create)

    async def delete_table(self, *, if_exists: bool = False) -> None:
        def _delete(conn: sqlite3.Connection) -> None:
            if not self._table_exists(conn):
                if if_exists:
                    return
                raise ResourceNotFoundError(f"Table not found: {self.table_name}")
            conn.execute(f"DROP TABLE {self._table}")
            logger.info("Deleted index table %s", self.table_name)

        await self._run(_delete)

    # ------------------------------------------------------------------
    # Item operations
    # ------------------------------------------------------------------

    async def batch_write(self, puts: Sequence[Item] = (), deletes: Sequence[Item] = ()) -> None:
        validate_batch(puts, deletes)
        if not puts and not deletes:
            return
        put_rows = [_item_to_row(item) for item in puts]
        delete_keys = [(item["p"], bytes(item["s"])) for item in deletes]

        def _write(conn: sqlite3.Connection) -> None:
            with self._transaction(conn):
                if put_rows:
                    conn.executemany(
                        f"INSERT OR REPLACE INTO {self._table} (p, s, k, h, attrs) VALUES (?, ?, ?, ?, ?)",
                        put_rows,
                    )
                if delete_keys:
                    conn.executemany(f"DELETE FROM {self._table} WHERE p = ? AND s = ?", delete_keys)

        await self._run(_write)

    async def query(
        self,
        partition: str,
        *,
        descending: bool = True,
        limit: int | None = None,
        exclusive_start_key: Item | None = None,
    ) -> QueryPage:
        page_size = min(limit, self.page_size) if limit else self.page_size
        order = "DESC" if descending else "ASC"
        clause = "p = ?"
        params: list[Any] = [partition]
        if exclusive_start_key is not None:
            clause += " AND s < ?" if descending else " AND s > ?"
            params.append(bytes(exclusive_start_key["s"]))
        sql = f"SELECT p, s, k, h, attrs FROM {self._table} WHERE {clause} ORDER BY s {order} LIMIT ?"
        params.append(page_size + 1)

        def _query(conn: sqlite3.Connection) -> list[Item]:
            return [_row_to_item(row) for row in conn.execute(sql, params)]

        items = await self._run(_query)
        return self._page(items, page_size, ("p", "s"))

    async def query_document_keys(
        self,
        encoded_key: str,
        *,
        exclusive_start_key: Item | None = None,
    ) -> QueryPage:
        clause = "k = ?"
        params: list[Any] = [encoded_key]
        if exclusive_start_key is not None:
            clause += " AND (p, s) > (?, ?)"
            params.extend([exclusive_start_key["p"], bytes(exclusive_start_key["s"])])
        sql = f"SELECT p, s FROM {self._table} WHERE {clause} ORDER BY p, s LIMIT ?"
        params.append(self.page_size + 1)

        def _query(conn: sqlite3.Connection) -> list[Item]:
            return [{"p": p, "s": bytes(s)} for p, s in conn.execute(sql, params)]

        items = await self._run(_query)
        return self._page(items, self.page_size, ("p", "s"))

    def _page(self, items: list[Item], page_size: int, key_names: tuple[str, ...]) -> QueryPage:
        last_key = None
        if len(items) > page_size:
            items = items[:page_size]
            last_key = {name: items[-1][name] for name in key_names}
        return QueryPage(items=items, last_evaluated_key=last_key, consumed_capacity=_read_capacity(items))

    async def get_item(self, key: Item) -> ItemRead:
        sql = f"SELECT p, s, k, h, attrs FROM {self._table} WHERE p = ? AND s = ?"

        def _get(conn: sqlite3.Connection) -> Item | None:
            row = conn.execute(sql, (key["p"], bytes(key["s"]))).fetchone()
            return _row_to_item(row) if row else None

        item = await self._run(_get)
        return ItemRead(item=item, consumed_capacity=_read_capacity([item] if item else []))

    async def increment(self, key: Item, deltas: Mapping[str, int]) -> None:
        p = key["p"]
        s = bytes(key["s"])
        select_sql = f"SELECT attrs FROM {self._table} WHERE p = ? AND s = ?"
        upsert_sql = (
            f"INSERT INTO {self._table} (p, s, k, h, attrs) VALUES (?, ?, NULL, NULL, ?) "
            "ON CONFLICT (p, s) DO UPDATE SET attrs = excluded.attrs"
        )

        def _increment(conn: sqlite3.Connection) -> None:
            # BEGIN IMMEDIATE takes the write lock before reading, so concurrent
            # writers on the same database file serialize here.
            with self._transaction(conn, immediate=True):
                row = conn.execute(select_sql, (p, s)).fetchone()
                attrs: dict[str, Any] = orjson.loads(row[0]) if row and row[0] else {}
                for name, delta in deltas.items():
                    attrs[name] = int(attrs.get(name, 0)) + int(delta)
                conn.execute(upsert_sql, (p, s, orjson.dumps(attrs)))

        await self._run(_increment)

    async def scan(self) -> list[Item]:
        sql = f"SELECT p, s, k, h, attrs FROM {self._table} ORDER BY p, s"

        def _scan(conn: sqlite3.Connection) -> list[Item]:
            return [_row_to_item(row) for row in conn.execute(sql)]

        return await self._run(_scan)

    async def close(self) -> None:
        def _close() -> None:
            with self._lock:
                if self._conn is not None:
                    try:
                        self._conn.close()
                    except sqlite3.Error:
                        pass  # Ignore errors during cleanup
                    self._conn = None

        await asyncio.to_thread(_close)
