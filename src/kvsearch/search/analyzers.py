"""Analyzer pipelines: character filters -> tokenizer -> token filters.

Analyzers are deterministic: the same text fed through the same pipeline
always produces the same token sequence. The index depends on this, since
an attribute's analyzer runs once over the stored value at index time and
again over the query text at search time.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
import threading

from kvsearch.errors import ConfigurationError
from kvsearch.search.filters import LowerCaseFilter, StopFilter
from kvsearch.search.tokenizers import (
    KeywordTokenizer,
    NGramTokenizer,
    PathHierarchyTokenizer,
    StandardTokenizer,
    WhitespaceTokenizer,
    WordBoundaryTokenizer,
)
from kvsearch.search.tokens import CharFilter, Token, TokenFilter, Tokenizer


class Analyzer:
    """Composable analyzer pipeline."""

    def __init__(
        self,
        tokenizer: Tokenizer,
        filters: Sequence[TokenFilter] | None = None,
        *,
        char_filters: Sequence[CharFilter] | None = None,
    ) -> None:
        self.char_filters = list(char_filters or [])
        self.tokenizer = tokenizer
        self.filters = list(filters or [])

    def analyze(self, text: str) -> list[Token]:
        for char_filter in self.char_filters:
            text = char_filter(text)
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        tokens = list(stream)
        for idx, token in enumerate(tokens):  # normalize positions post-filtering
            token.position = idx
        return tokens

    def __call__(self, text: str) -> list[Token]:
        return self.analyze(text)


class StandardAnalyzer(Analyzer):
    """Standard tokenizer followed by lowercasing.

    ``"The 2 QUICK Brown-Foxes"`` analyzes to ``the``, ``2``, ``quick``,
    ``brown``, ``foxes``. Punctuation other than hyphens, commas and periods
    stays attached to words (``item!``).
    """

    def __init__(self, *, max_token_length: int = 255, stop_words: str | Sequence[str] | None = None) -> None:
        filters: list[TokenFilter] = [LowerCaseFilter()]
        if stop_words is not None:
            filters.append(StopFilter(stop_words))
        super().__init__(StandardTokenizer(max_token_length=max_token_length), filters)


class KeywordAnalyzer(Analyzer):
    """Analyzer that treats the entire input as a single token."""

    def __init__(self) -> None:
        super().__init__(KeywordTokenizer())


_ANALYZER_FACTORIES: dict[str, Callable[[], Analyzer]] = {
    "standard": lambda: StandardAnalyzer(),
    "english": lambda: StandardAnalyzer(stop_words="_english_"),
    "keyword": lambda: KeywordAnalyzer(),
    "whitespace": lambda: Analyzer(WhitespaceTokenizer()),
    "simple": lambda: Analyzer(WordBoundaryTokenizer(), [LowerCaseFilter()]),
    "ngram": lambda: Analyzer(NGramTokenizer(), [LowerCaseFilter()]),
    "path": lambda: Analyzer(PathHierarchyTokenizer()),
}

_ANALYZER_CACHE: dict[str, Analyzer] = {}
_CACHE_LOCK = threading.Lock()


def register_analyzer(name: str, factory: Callable[[], Analyzer]) -> None:
    """Register (or replace) a named analyzer factory."""

    normalized = name.lower()
    with _CACHE_LOCK:
        _ANALYZER_FACTORIES[normalized] = factory
        _ANALYZER_CACHE.pop(normalized, None)


def get_analyzer(name: str | None = None) -> Analyzer:
    """Return the shared analyzer instance registered under ``name``.

    Instances are built on first use and cached, so expensive tokenizers
    (dictionary-backed morphological analyzers) load only once per process.
    """

    normalized = (name or "standard").lower()
    with _CACHE_LOCK:
        cached = _ANALYZER_CACHE.get(normalized)
        if cached is not None:
            return cached
        factory = _ANALYZER_FACTORIES.get(normalized)
        if factory is None:
            msg = f"Unknown analyzer '{name}'. Available: {sorted(_ANALYZER_FACTORIES)}"
            raise ConfigurationError(msg)
        analyzer = factory()
        _ANALYZER_CACHE[normalized] = analyzer
        return analyzer
