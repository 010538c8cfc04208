"""Adapters layer - index store implementations.

The engines talk to :class:`AbstractIndexStore`; concrete stores adapt
SQLite (embedded, local runs and tests) and Amazon DynamoDB (boto3).
"""

from .index_store import BATCH_SIZE, AbstractIndexStore, ItemRead, QueryPage
from .sqlite_store import SqliteIndexStore


__all__ = [
    "BATCH_SIZE",
    "AbstractIndexStore",
    "ItemRead",
    "QueryPage",
    "SqliteIndexStore",
]
