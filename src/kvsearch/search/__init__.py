"""
Inverted index and BM25 ranking on an ordered key-value store.

This package provides:
- tokens, tokenizers, filters, analyzers: text analysis pipeline
- keys: document key encoding
- records: posting and metadata record layout
- schema: searchable attributes and key layout
- stats: BM25 scoring statistics
- metadata: corpus statistics record
- indexer: change-event driven index maintenance and bulk export
- bm25_engine: query scoring engine
"""
