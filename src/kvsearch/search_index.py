"""Search index facade.

Wires a store, a schema, the index maintenance engine and the ranking engine
behind one object::

    index = SearchIndex(
        SqliteIndexStore("index.db", "messages-index"),
        IndexSchema([IndexAttribute("Message")], keys=[IndexKey("Id")]),
    )
    await index.create_table(if_not_exists=True)
    await index.process_records(stream_records)
    response = await index.search("new item", attributes=["Message^2"])
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
import logging
from pathlib import Path
from typing import Any

from kvsearch.adapters.index_store import AbstractIndexStore
from kvsearch.config import Settings, create_store
from kvsearch.domain.events import ChangeEvent, IndexMetadata
from kvsearch.domain.search import BM25Options, SearchOptions, SearchResponse
from kvsearch.observability.tracing import create_span
from kvsearch.search.bm25_engine import BM25SearchEngine
from kvsearch.search.indexer import BatchResult, IndexMaintenanceEngine, InsertResult, TypedImage
from kvsearch.search.metadata import MetadataAccumulator
from kvsearch.search.schema import IndexSchema


logger = logging.getLogger(__name__)


class SearchIndex:
    """Full-text index over one source collection."""

    def __init__(
        self,
        store: AbstractIndexStore,
        schema: IndexSchema,
        *,
        default_options: SearchOptions | None = None,
    ) -> None:
        self.store = store
        self.schema = schema
        self.metadata = MetadataAccumulator(store, schema)
        self.indexer = IndexMaintenanceEngine(store, schema, self.metadata)
        self.engine = BM25SearchEngine(store, schema, self.metadata, default_options=default_options)

    @classmethod
    def from_settings(cls, settings: Settings, schema: IndexSchema) -> SearchIndex:
        return cls(create_store(settings), schema, default_options=settings.search_options())

    @property
    def table_name(self) -> str:
        return self.store.table_name

    async def create_table(self, *, if_not_exists: bool = False, **table_properties: Any) -> None:
        with create_span("kvsearch.create_table", attributes={"kvsearch.table": self.table_name}):
            await self.store.create_table(if_not_exists=if_not_exists, **table_properties)

    async def delete_table(self, *, if_exists: bool = False) -> None:
        with create_span("kvsearch.delete_table", attributes={"kvsearch.table": self.table_name}):
            await self.store.delete_table(if_exists=if_exists)

    async def process_records(self, records: Sequence[ChangeEvent | Mapping[str, Any]]) -> BatchResult:
        return await self.indexer.process_records(records)

    async def reindex(self, items: Iterable[TypedImage]) -> BatchResult:
        return await self.indexer.reindex(items)

    async def search(
        self,
        query: str,
        *,
        attributes: Sequence[str] | None = None,
        max_items: int | None = None,
        min_score: float | None = None,
        bm25: BM25Options | Mapping[str, float] | None = None,
    ) -> SearchResponse:
        """Rank documents for ``query``; unset options fall back to the index defaults."""

        defaults = self.engine.default_options
        if bm25 is None:
            bm25_options = defaults.bm25
        elif isinstance(bm25, BM25Options):
            bm25_options = bm25
        else:
            bm25_options = BM25Options.model_validate({**defaults.bm25.model_dump(), **dict(bm25)})

        options = SearchOptions(
            attributes=list(attributes) if attributes is not None else defaults.attributes,
            max_items=defaults.max_items if max_items is None else max_items,
            min_score=defaults.min_score if min_score is None else min_score,
            bm25=bm25_options,
        )
        return await self.engine.search(query, options)

    async def get_metadata(self) -> IndexMetadata:
        return await self.metadata.get_metadata()

    async def export_tokens(
        self,
        path: str | Path,
        item: TypedImage,
        token_deltas: dict[str, int] | None = None,
    ) -> InsertResult:
        return await self.indexer.export_tokens(path, item, token_deltas)

    async def export_metadata(self, path: str | Path, document_count: int, token_deltas: Mapping[str, int]) -> None:
        await self.indexer.export_metadata(path, document_count, token_deltas)

    async def close(self) -> None:
        await self.store.close()
