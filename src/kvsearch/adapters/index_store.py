"""Index store abstraction.

The indexing and ranking engines only need a handful of primitives from
the underlying key-value store: unconditional batched puts/deletes, range
queries over one partition, a reverse lookup from document key to its
postings, point reads and an atomic additive update. Implementations adapt
a concrete store (SQLite, DynamoDB) to this contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any


# Maximum number of put/delete requests per batch_write call
BATCH_SIZE = 25

Item = dict[str, Any]


@dataclass(frozen=True)
class QueryPage:
    """One page of query results."""

    items: list[Item] = field(default_factory=list)
    last_evaluated_key: Item | None = None
    consumed_capacity: float = 0.0


@dataclass(frozen=True)
class ItemRead:
    """Result of a point read."""

    item: Item | None
    consumed_capacity: float = 0.0


def validate_batch(puts: Sequence[Item], deletes: Sequence[Item]) -> None:
    if len(puts) + len(deletes) > BATCH_SIZE:
        msg = f"batch_write accepts at most {BATCH_SIZE} requests, got {len(puts) + len(deletes)}"
        raise ValueError(msg)


class AbstractIndexStore(ABC):
    """Abstract ordered key-value store holding one index table.

    Items are plain dicts. Every item has a string partition ``p`` and a
    binary sort ``s``; postings also carry ``k`` (encoded document key,
    queryable through :meth:`query_document_keys`) and ``h``.
    """

    table_name: str

    @abstractmethod
    async def create_table(self, *, if_not_exists: bool = False, **table_properties: Any) -> None:
        """Create the index table; raise ResourceInUseError if it exists and not ``if_not_exists``."""
        raise NotImplementedError

    @abstractmethod
    async def delete_table(self, *, if_exists: bool = False) -> None:
        """Drop the index table; raise ResourceNotFoundError if missing and not ``if_exists``."""
        raise NotImplementedError

    @abstractmethod
    async def batch_write(self, puts: Sequence[Item] = (), deletes: Sequence[Item] = ()) -> None:
        """Unconditionally put and delete up to :data:`BATCH_SIZE` items in total."""
        raise NotImplementedError

    @abstractmethod
    async def query(
        self,
        partition: str,
        *,
        descending: bool = True,
        limit: int | None = None,
        exclusive_start_key: Item | None = None,
    ) -> QueryPage:
        """Return items of ``partition`` ordered by sort key."""
        raise NotImplementedError

    @abstractmethod
    async def query_document_keys(
        self,
        encoded_key: str,
        *,
        exclusive_start_key: Item | None = None,
    ) -> QueryPage:
        """Return the primary keys (``p``, ``s``) of every item whose ``k`` equals ``encoded_key``."""
        raise NotImplementedError

    @abstractmethod
    async def get_item(self, key: Item) -> ItemRead:
        """Point read by primary key."""
        raise NotImplementedError

    @abstractmethod
    async def increment(self, key: Item, deltas: Mapping[str, int]) -> None:
        """Atomically add ``deltas`` to numeric attributes, treating missing ones as 0."""
        raise NotImplementedError

    @abstractmethod
    async def scan(self) -> list[Item]:
        """Return every item of the table (diagnostics and tests)."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release store resources."""

        return
