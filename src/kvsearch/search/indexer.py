"""Index maintenance driven by change events.

Every document is indexed as one posting per (attribute, distinct token).
Modifications are applied as a full replace: all postings of the document are
looked up through the keys-index and deleted, then the new image is analyzed
and written again. Re-delivering an event therefore converges to the same
posting set.

Document and token counters are folded across a whole batch of events and
written once, at the end, through :class:`MetadataAccumulator`.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

import anyio
import orjson

from kvsearch.adapters.index_store import BATCH_SIZE, AbstractIndexStore, Item
from kvsearch.domain.events import ChangeEvent, EventName
from kvsearch.errors import AnalysisError
from kvsearch.observability.context import bind_index_context
from kvsearch.observability.metrics import EVENTS_PROCESSED, POSTINGS_DELETED, POSTINGS_WRITTEN
from kvsearch.observability.tracing import create_span
from kvsearch.search.keys import encode_keys
from kvsearch.search.metadata import MetadataAccumulator
from kvsearch.search.records import (
    ATTR_META_DOCUMENT_COUNT,
    ATTR_PK,
    ATTR_SK,
    Posting,
    metadata_key,
    split_partition_key,
    to_attribute_values,
    token_count_attribute,
    unpack_sort_key,
)
from kvsearch.search.schema import IndexAttribute, IndexSchema


logger = logging.getLogger(__name__)

TypedImage = Mapping[str, Mapping[str, Any]]


@dataclass(frozen=True)
class InsertResult:
    """Distinct postings written for one document plus the running token deltas."""

    inserted: int
    token_deltas: dict[str, int]


@dataclass(frozen=True)
class DeleteResult:
    deleted: int
    token_deltas: dict[str, int]


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one :meth:`IndexMaintenanceEngine.process_records` call."""

    processed: int
    document_count_delta: int
    token_deltas: dict[str, int] = field(default_factory=dict)


def attribute_text(image: TypedImage | None, name: str) -> str:
    """Return the string value of ``name`` in a typed image; anything else analyzes as ``""``."""

    if not image:
        return ""
    value = image.get(name)
    if isinstance(value, Mapping):
        text = value.get("S")
        return text if isinstance(text, str) else ""
    return ""


def _chunks(items: Sequence[Item], size: int = BATCH_SIZE) -> Iterable[Sequence[Item]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class IndexMaintenanceEngine:
    """Keep the inverted index in step with the source collection."""

    def __init__(
        self,
        store: AbstractIndexStore,
        schema: IndexSchema,
        metadata: MetadataAccumulator | None = None,
    ) -> None:
        self.store = store
        self.schema = schema
        self.metadata = metadata or MetadataAccumulator(store, schema)

    # ------------------------------------------------------------------
    # Posting construction
    # ------------------------------------------------------------------

    def encoded_key(self, keys: TypedImage) -> str:
        return encode_keys(self.schema.key_parts(keys))

    def _analyze(self, attribute: IndexAttribute, text: str) -> list[str]:
        try:
            return attribute.analyze(text)
        except Exception as exc:
            raise AnalysisError(attribute.name, str(exc)) from exc

    def build_postings(self, keys: TypedImage, image: TypedImage | None) -> tuple[list[Posting], dict[str, int]]:
        """Analyze every configured attribute of ``image``.

        Returns the postings to write and the analyzed token total per
        attribute name. Shared by the live path and the bulk export so both
        produce identical records.
        """

        encoded_key = self.encoded_key(keys)
        postings: list[Posting] = []
        token_totals: dict[str, int] = {}
        for attribute in self.schema:
            tokens = self._analyze(attribute, attribute_text(image, attribute.name))
            token_totals[attribute.name] = len(tokens)
            for token, occurrence in Counter(tokens).items():
                postings.append(
                    Posting(
                        attribute_key=attribute.key,
                        token=token,
                        occurrence=occurrence,
                        document_token_count=len(tokens),
                        encoded_key=encoded_key,
                    )
                )
        return postings, token_totals

    # ------------------------------------------------------------------
    # Live maintenance
    # ------------------------------------------------------------------

    async def insert_tokens(
        self,
        keys: TypedImage,
        new_image: TypedImage | None,
        token_deltas: dict[str, int] | None = None,
    ) -> InsertResult:
        """Write one posting per distinct token of every attribute of ``new_image``."""

        deltas = token_deltas if token_deltas is not None else {}
        postings, token_totals = self.build_postings(keys, new_image)
        for name, total in token_totals.items():
            deltas[name] = deltas.get(name, 0) + total

        items = [posting.to_item() for posting in postings]
        for chunk in _chunks(items):
            await self.store.batch_write(puts=chunk)

        if items:
            POSTINGS_WRITTEN.labels(table=self.store.table_name).inc(len(items))
        return InsertResult(inserted=len(items), token_deltas=deltas)

    async def delete_tokens(self, keys: TypedImage, token_deltas: dict[str, int] | None = None) -> DeleteResult:
        """Delete every posting of the document, subtracting their occurrences from ``token_deltas``."""

        deltas = token_deltas if token_deltas is not None else {}
        encoded_key = self.encoded_key(keys)

        found: list[Item] = []
        start_key: Item | None = None
        while True:
            page = await self.store.query_document_keys(encoded_key, exclusive_start_key=start_key)
            found.extend(page.items)
            start_key = page.last_evaluated_key
            if start_key is None:
                break

        for item in found:
            attribute_key, _ = split_partition_key(item[ATTR_PK])
            occurrence, _, _ = unpack_sort_key(item[ATTR_SK])
            name = self.schema.attribute_name_for_key(attribute_key)
            deltas[name] = deltas.get(name, 0) - occurrence

        keys_only = [{ATTR_PK: item[ATTR_PK], ATTR_SK: item[ATTR_SK]} for item in found]
        for chunk in _chunks(keys_only):
            await self.store.batch_write(deletes=chunk)

        if found:
            POSTINGS_DELETED.labels(table=self.store.table_name).inc(len(found))
        return DeleteResult(deleted=len(found), token_deltas=deltas)

    async def apply_event(self, event: ChangeEvent, token_deltas: dict[str, int]) -> int:
        """Apply one event and return its document-count delta."""

        if event.event_name is EventName.INSERT:
            inserted = await self.insert_tokens(event.keys, event.new_image, token_deltas)
            return 1 if inserted.inserted else 0
        if event.event_name is EventName.REMOVE:
            deleted = await self.delete_tokens(event.keys, token_deltas)
            return -1 if deleted.deleted else 0

        deleted = await self.delete_tokens(event.keys, token_deltas)
        inserted = await self.insert_tokens(event.keys, event.new_image, token_deltas)
        return (1 if inserted.inserted else 0) - (1 if deleted.deleted else 0)

    async def process_records(self, records: Sequence[ChangeEvent | Mapping[str, Any]]) -> BatchResult:
        """Apply a batch of change events in order, then update the metadata record once.

        Raw stream records are accepted as well as :class:`ChangeEvent`
        instances. Any failure aborts the batch before the metadata update;
        the caller retries the whole batch.
        """

        events = [ChangeEvent.coerce(record) for record in records]
        if not events:
            return BatchResult(processed=0, document_count_delta=0)

        table = self.store.table_name
        with (
            bind_index_context(table, "process_records"),
            create_span(
                "kvsearch.process_records",
                attributes={"kvsearch.table": table, "kvsearch.records": len(events)},
            ) as span,
        ):
            document_count_delta = 0
            token_deltas: dict[str, int] = {}
            for event in events:
                document_count_delta += await self.apply_event(event, token_deltas)
                EVENTS_PROCESSED.labels(table=table, event=event.event_name.value).inc()

            await self.metadata.apply_delta(document_count_delta, token_deltas)
            span.set_attribute("kvsearch.document_count_delta", document_count_delta)

        logger.debug(
            "Processed %d change events on %s (document delta %+d)",
            len(events),
            table,
            document_count_delta,
        )
        return BatchResult(processed=len(events), document_count_delta=document_count_delta, token_deltas=token_deltas)

    async def reindex(self, items: Iterable[TypedImage]) -> BatchResult:
        """Re-analyze existing source items (typed attribute maps) as MODIFY events."""

        events = [
            ChangeEvent(
                event_name=EventName.MODIFY,
                keys={name: dict(item[name]) for name in self.schema.key_names if name in item},
                new_image={name: dict(value) for name, value in item.items()},
            )
            for item in items
        ]
        return await self.process_records(events)

    # ------------------------------------------------------------------
    # Bulk export
    # ------------------------------------------------------------------

    async def export_tokens(
        self,
        path: str | Path,
        item: TypedImage,
        token_deltas: dict[str, int] | None = None,
    ) -> InsertResult:
        """Append the postings of ``item`` to an NDJSON bulk-load file.

        Each line is ``{"Item": {...}}`` in DynamoDB JSON with base64 binaries,
        the format accepted by DynamoDB's import-from-S3.
        """

        deltas = token_deltas if token_deltas is not None else {}
        keys = {name: item[name] for name in self.schema.key_names if name in item}
        postings, token_totals = self.build_postings(keys, item)
        for name, total in token_totals.items():
            deltas[name] = deltas.get(name, 0) + total

        if postings:
            payload = b"".join(
                orjson.dumps({"Item": to_attribute_values(posting.to_item())}) + b"\n" for posting in postings
            )
            async with await anyio.open_file(path, "ab") as handle:
                await handle.write(payload)
        return InsertResult(inserted=len(postings), token_deltas=deltas)

    async def export_metadata(self, path: str | Path, document_count: int, token_deltas: Mapping[str, int]) -> None:
        """Write the metadata record matching a finished export."""

        item: Item = {**metadata_key(), ATTR_META_DOCUMENT_COUNT: int(document_count)}
        for name, total in token_deltas.items():
            item[token_count_attribute(self.schema.storage_key_for_name(name))] = int(total)
        async with await anyio.open_file(path, "ab") as handle:
            await handle.write(orjson.dumps({"Item": to_attribute_values(item)}) + b"\n")
