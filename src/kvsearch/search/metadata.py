"""Corpus statistics kept in the single metadata record.

The record holds the document count (``dc``) and one token total per
attribute (``tc:<attributeKey>``). Writers only ever add deltas through the
store's atomic increment, so concurrent indexers working on disjoint shards
commute. Readers always go to the store; nothing is cached between calls.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging

from kvsearch.adapters.index_store import AbstractIndexStore
from kvsearch.domain.events import IndexMetadata
from kvsearch.search.records import (
    ATTR_META_DOCUMENT_COUNT,
    ATTR_META_TOKEN_COUNT,
    metadata_key,
    token_count_attribute,
)
from kvsearch.search.schema import IndexSchema


logger = logging.getLogger(__name__)

_TOKEN_COUNT_PREFIX = f"{ATTR_META_TOKEN_COUNT}:"


class MetadataAccumulator:
    """Apply and read document/token count deltas on the metadata record."""

    def __init__(self, store: AbstractIndexStore, schema: IndexSchema) -> None:
        self.store = store
        self.schema = schema

    async def apply_delta(self, document_count_delta: int, token_deltas: Mapping[str, int]) -> None:
        """Add ``document_count_delta`` and per-attribute ``token_deltas`` (keyed by attribute name)."""

        deltas: dict[str, int] = {ATTR_META_DOCUMENT_COUNT: int(document_count_delta)}
        for name, delta in token_deltas.items():
            deltas[token_count_attribute(self.schema.storage_key_for_name(name))] = int(delta)
        logger.debug("Applying metadata delta %s", deltas)
        await self.store.increment(metadata_key(), deltas)

    async def get_metadata(self) -> IndexMetadata:
        metadata, _ = await self.read()
        return metadata

    async def read(self) -> tuple[IndexMetadata, float]:
        """Point read of the metadata record, returning the consumed read capacity too."""

        read = await self.store.get_item(metadata_key())
        item = read.item or {}

        token_counts: dict[str, int] = {}
        for name, value in item.items():
            if name.startswith(_TOKEN_COUNT_PREFIX):
                attribute_key = name.removeprefix(_TOKEN_COUNT_PREFIX)
                token_counts[self.schema.attribute_name_for_key(attribute_key)] = int(value)

        metadata = IndexMetadata(
            document_count=int(item.get(ATTR_META_DOCUMENT_COUNT, 0)),
            token_count_by_attribute=token_counts,
        )
        return metadata, read.consumed_capacity
