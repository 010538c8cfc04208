"""Shared test fixtures and configuration."""

from __future__ import annotations

import asyncio
import os

import pytest

from kvsearch.adapters.sqlite_store import SqliteIndexStore
from kvsearch.search.analyzers import StandardAnalyzer
from kvsearch.search.schema import IndexAttribute, IndexKey, IndexSchema, KeyType
from kvsearch.search_index import SearchIndex


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Drop KVSEARCH_* variables so Settings only sees what a test sets."""
    for key in list(os.environ):
        if key.upper().startswith("KVSEARCH_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def message_schema() -> IndexSchema:
    """Single searchable attribute keyed by a numeric Id."""
    return IndexSchema(
        attributes=[IndexAttribute("Message", analyzer=StandardAnalyzer())],
        keys=[IndexKey("Id", KeyType.HASH)],
    )


@pytest.fixture
def sqlite_store(tmp_path):
    store = SqliteIndexStore(tmp_path / "index.db", "messages-index")
    yield store
    asyncio.run(store.close())


@pytest.fixture
def search_index(sqlite_store, message_schema) -> SearchIndex:
    return SearchIndex(sqlite_store, message_schema)


def stream_record(event_name: str, item_id: str, message: str | None = None) -> dict:
    """Build a raw change stream record for the Message/Id fixture table."""
    payload: dict = {"Keys": {"Id": {"N": item_id}}}
    if message is not None:
        payload["NewImage"] = {"Id": {"N": item_id}, "Message": {"S": message}}
    return {"eventName": event_name, "dynamodb": payload}


@pytest.fixture
def make_record():
    return stream_record
