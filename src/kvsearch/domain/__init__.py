"""Domain layer - value objects exchanged with callers.

- Change events consumed by the indexer
- Search options and ranked responses
- Index metadata snapshots
"""

from kvsearch.domain.events import ChangeEvent, EventName, IndexMetadata
from kvsearch.domain.search import BM25Options, ConsumedCapacity, SearchHit, SearchOptions, SearchResponse


__all__ = [
    "BM25Options",
    "ChangeEvent",
    "ConsumedCapacity",
    "EventName",
    "IndexMetadata",
    "SearchHit",
    "SearchOptions",
    "SearchResponse",
]
