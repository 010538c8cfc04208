"""BM25 ranking over the stored postings.

For every searched attribute the query is analyzed with that attribute's
analyzer, each distinct token's posting list is read in full, and per-document
scores are summed across tokens and attributes::

    idf   = ln(1 + (N - df + 0.5) / (df + 0.5))
    tf    = occ / (occ + k1 * (1 - b + b * dl / avgdl))
    score = boost * tf * idf * (k1 + 1)

Corpus statistics come from the metadata record, read once per search.
"""

from __future__ import annotations

import logging

from kvsearch.adapters.index_store import AbstractIndexStore, Item
from kvsearch.domain.search import ConsumedCapacity, SearchHit, SearchOptions, SearchResponse
from kvsearch.errors import AnalysisError
from kvsearch.observability.context import bind_index_context
from kvsearch.observability.metrics import INDEX_DOC_COUNT, SEARCH_CAPACITY, SEARCH_LATENCY, track_latency
from kvsearch.observability.tracing import create_span
from kvsearch.search.keys import decode_keys
from kvsearch.search.metadata import MetadataAccumulator
from kvsearch.search.records import ATTR_KEYS, ATTR_SK, partition_key, unpack_sort_key
from kvsearch.search.schema import IndexAttribute, IndexSchema
from kvsearch.search.stats import AttributeLengthStats, bm25_score, calculate_idf


logger = logging.getLogger(__name__)


class BM25SearchEngine:
    """Rank documents for a free-text query."""

    def __init__(
        self,
        store: AbstractIndexStore,
        schema: IndexSchema,
        metadata: MetadataAccumulator | None = None,
        *,
        default_options: SearchOptions | None = None,
    ) -> None:
        self.store = store
        self.schema = schema
        self.metadata = metadata or MetadataAccumulator(store, schema)
        self.default_options = default_options or SearchOptions()

    async def search(self, query: str, options: SearchOptions | None = None) -> SearchResponse:
        options = options or self.default_options
        table = self.store.table_name
        with (
            bind_index_context(table, "search"),
            create_span("kvsearch.search", attributes={"kvsearch.table": table}) as span,
            track_latency(SEARCH_LATENCY, table=table),
        ):
            response = await self._search(query, options)
            span.set_attribute("kvsearch.hits", len(response.items))
            span.set_attribute("kvsearch.capacity_units", response.consumed_capacity.capacity_units)

        SEARCH_CAPACITY.labels(table=table).observe(response.consumed_capacity.capacity_units)
        return response

    async def _search(self, query: str, options: SearchOptions) -> SearchResponse:
        attributes = self.schema.resolve_search_attributes(options.attributes)
        params = options.bm25.to_params()

        metadata, capacity = await self.metadata.read()
        total_docs = metadata.document_count
        INDEX_DOC_COUNT.labels(table=self.store.table_name).set(total_docs)

        scores: dict[str, float] = {}
        for selected in attributes:
            attribute = selected.attribute
            length_stats = AttributeLengthStats(
                attribute=attribute.name,
                total_tokens=metadata.token_count_by_attribute.get(attribute.name, 0),
                document_count=total_docs,
            )
            if not length_stats.is_known:
                logger.debug(
                    "Skipping attribute %s: no length statistics (documents=%d, tokens=%d)",
                    attribute.name,
                    length_stats.document_count,
                    length_stats.total_tokens,
                )
                continue
            average_length = length_stats.average_length

            for token in dict.fromkeys(self._analyze(attribute, query)):
                postings, consumed = await self._read_postings(partition_key(attribute.key, token))
                capacity += consumed
                if not postings:
                    continue
                idf = calculate_idf(len(postings), total_docs)
                for item in postings:
                    occurrence, document_length, _ = unpack_sort_key(item[ATTR_SK])
                    score = bm25_score(
                        occurrence,
                        document_length,
                        average_length,
                        idf,
                        boost=selected.boost,
                        params=params,
                    )
                    encoded_key = item[ATTR_KEYS]
                    scores[encoded_key] = scores.get(encoded_key, 0.0) + score

        ranked = sorted(
            ((encoded_key, score) for encoded_key, score in scores.items() if score >= options.min_score),
            key=lambda entry: (-entry[1], entry[0]),
        )[: options.max_items]

        return SearchResponse(
            items=[SearchHit(keys=self._decode(encoded_key), score=score) for encoded_key, score in ranked],
            consumed_capacity=ConsumedCapacity(table_name=self.store.table_name, capacity_units=capacity),
        )

    @staticmethod
    def _analyze(attribute: IndexAttribute, text: str) -> list[str]:
        try:
            return attribute.analyze(text)
        except Exception as exc:
            raise AnalysisError(attribute.name, str(exc)) from exc

    async def _read_postings(self, partition: str) -> tuple[list[Item], float]:
        """Read every posting of one (attribute, token) partition, highest occurrence first."""

        items: list[Item] = []
        capacity = 0.0
        start_key: Item | None = None
        while True:
            page = await self.store.query(partition, descending=True, exclusive_start_key=start_key)
            items.extend(page.items)
            capacity += page.consumed_capacity
            start_key = page.last_evaluated_key
            if start_key is None:
                return items, capacity

    def _decode(self, encoded_key: str) -> dict[str, dict[str, str]]:
        parts = decode_keys(encoded_key)
        keys = {self.schema.partition_key_name: parts[0]}
        if self.schema.sort_key_name and len(parts) > 1:
            keys[self.schema.sort_key_name] = parts[1]
        return keys
