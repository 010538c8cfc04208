"""Full-text search (inverted index + BM25) on an ordered key-value store."""

from kvsearch.domain import ChangeEvent, EventName, IndexMetadata, SearchHit, SearchOptions, SearchResponse
from kvsearch.errors import (
    AnalysisError,
    AttributeNotFoundError,
    ConfigurationError,
    KVSearchError,
    MissingKeyError,
    ResourceInUseError,
    ResourceNotFoundError,
    StoreError,
    UnknownEventError,
)
from kvsearch.search.analyzers import Analyzer, KeywordAnalyzer, StandardAnalyzer, get_analyzer, register_analyzer
from kvsearch.search.schema import IndexAttribute, IndexKey, IndexSchema, KeyType
from kvsearch.search_index import SearchIndex


__version__ = "0.1.0"

__all__ = [
    "AnalysisError",
    "Analyzer",
    "AttributeNotFoundError",
    "ChangeEvent",
    "ConfigurationError",
    "EventName",
    "IndexAttribute",
    "IndexKey",
    "IndexMetadata",
    "IndexSchema",
    "KVSearchError",
    "KeyType",
    "KeywordAnalyzer",
    "MissingKeyError",
    "ResourceInUseError",
    "ResourceNotFoundError",
    "SearchHit",
    "SearchIndex",
    "SearchOptions",
    "SearchResponse",
    "StandardAnalyzer",
    "StoreError",
    "UnknownEventError",
    "get_analyzer",
    "register_analyzer",
]
