"""Tokenizers turning a (character-filtered) string into a token stream.

Each tokenizer is configured once at construction and is then a pure
function of its input, so the same instance can be shared between index
time and query time.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
import re
import threading
from typing import Any

import icu

from kvsearch.errors import ConfigurationError
from kvsearch.search.tokens import Token


MorphologicalBackend = Callable[[str], Iterable[tuple[str, Mapping[str, Any]]]]


class KeywordTokenizer:
    """Emit the whole input as a single token (exact matching)."""

    def __call__(self, text: str) -> Iterator[Token]:
        if text:
            yield Token(text=text)


class StandardTokenizer:
    """Split on hyphens, whitespace, commas and periods.

    Segments longer than ``max_token_length`` are split at
    ``max_token_length`` intervals.
    """

    _SPLIT_PATTERN = re.compile(r"[-\s,.]+")

    def __init__(self, *, max_token_length: int = 255) -> None:
        if max_token_length < 1:
            raise ConfigurationError("max_token_length must be at least 1")
        self.max_token_length = max_token_length

    def __call__(self, text: str) -> Iterator[Token]:
        position = 0
        for segment in self._SPLIT_PATTERN.split(text):
            for offset in range(0, len(segment), self.max_token_length):
                yield Token(text=segment[offset : offset + self.max_token_length], position=position)
                position += 1


class WhitespaceTokenizer:
    """Split on runs of Unicode whitespace only."""

    def __call__(self, text: str) -> Iterator[Token]:
        for position, word in enumerate(text.split()):
            yield Token(text=word, position=position)


class NGramTokenizer:
    """Emit every character n-gram of length ``min_gram..max_gram``.

    Grams are produced for each start offset in turn, shortest first, so
    ``"ab"`` with the defaults yields ``a``, ``ab``, ``b``.
    """

    def __init__(self, *, min_gram: int = 1, max_gram: int = 2) -> None:
        if min_gram < 1 or max_gram < min_gram:
            msg = f"Invalid n-gram range: min_gram={min_gram}, max_gram={max_gram}"
            raise ConfigurationError(msg)
        self.min_gram = min_gram
        self.max_gram = max_gram

    def __call__(self, text: str) -> Iterator[Token]:
        position = 0
        length = len(text)
        for start in range(length):
            for size in range(self.min_gram, self.max_gram + 1):
                if start + size > length:
                    break
                yield Token(text=text[start : start + size], position=position)
                position += 1


class PathHierarchyTokenizer:
    """Emit every prefix of a delimited path, most specific last.

    ``/one/two/three`` yields ``/one``, ``/one/two`` and ``/one/two/three``.
    """

    def __init__(self, *, delimiter: str = "/") -> None:
        if not delimiter:
            raise ConfigurationError("delimiter must be a non-empty string")
        self.delimiter = delimiter

    def __call__(self, text: str) -> Iterator[Token]:
        if not text:
            return
        position = 0
        seen: set[str] = set()
        cursor = text.find(self.delimiter, 1)
        while cursor != -1:
            prefix = text[:cursor]
            if prefix not in seen:
                seen.add(prefix)
                yield Token(text=prefix, position=position)
                position += 1
            cursor = text.find(self.delimiter, cursor + len(self.delimiter))
        if text not in seen:
            yield Token(text=text, position=position)


class WordBoundaryTokenizer:
    """Locale-aware word segmentation with ICU.

    Only word-like segments (letters, numbers, kana, ideographs) become
    tokens; whitespace and punctuation segments are skipped. Scripts written
    without spaces (Japanese, Chinese, Thai) are split with ICU's dictionaries.

    Args:
        locale: ICU locale identifier such as ``"ja"`` or ``"en_US"``; empty
            selects the root locale
    """

    # ICU rule statuses below this value mark non-word segments (UBRK_WORD_NONE_LIMIT)
    _WORD_NONE_LIMIT = 100

    def __init__(self, locale: str = "") -> None:
        self.locale = locale
        self._iterator = icu.BreakIterator.createWordInstance(icu.Locale(locale))
        self._lock = threading.Lock()

    def __call__(self, text: str) -> Iterator[Token]:
        return iter(self._segment(text))

    def _segment(self, text: str) -> list[Token]:
        # Boundaries are UTF-16 offsets, so slice the ICU string rather than ``text``.
        source = icu.UnicodeString(text)
        tokens: list[Token] = []
        with self._lock:
            iterator = self._iterator
            iterator.setText(source)
            start = iterator.first()
            for end in iterator:
                if iterator.getRuleStatus() >= self._WORD_NONE_LIMIT:
                    tokens.append(Token(text=str(source[start:end]), position=len(tokens)))
                start = end
        return tokens


class MorphologicalTokenizer:
    """Adapter for an external morphological analyzer.

    ``backend`` receives the text and returns ``(surface_form, features)``
    pairs. The features mapping (part of speech, basic form, reading, ...)
    is attached to each token as metadata for downstream filters such as
    :class:`~kvsearch.search.filters.BaseFormFilter`.

    Building a backend usually means loading a dictionary, so hosts should
    construct the tokenizer once and reuse it.
    """

    def __init__(self, backend: MorphologicalBackend) -> None:
        self.backend = backend

    def __call__(self, text: str) -> Iterator[Token]:
        if not text:
            return
        for position, (surface, features) in enumerate(self.backend(text)):
            yield Token(text=surface, position=position, metadata=dict(features or {}))
