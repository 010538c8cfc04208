"""Character filters and token filters for analyzer pipelines."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
import re
from typing import Literal
import unicodedata

from bs4 import BeautifulSoup

from kvsearch.errors import ConfigurationError
from kvsearch.search.tokens import Token


# ---------------------------------------------------------------------------
# Character filters (str -> str)
# ---------------------------------------------------------------------------


class UnicodeNormalizer:
    """Apply Unicode normalization (NFC/NFKC, composed or decomposed)."""

    def __init__(
        self,
        *,
        name: Literal["nfc", "nfkc"] = "nfkc",
        mode: Literal["compose", "decompose"] = "compose",
    ) -> None:
        if name not in ("nfc", "nfkc") or mode not in ("compose", "decompose"):
            raise ConfigurationError(f"Unsupported normalization: name={name!r}, mode={mode!r}")
        if name == "nfc":
            self.form = "NFC" if mode == "compose" else "NFD"
        else:
            self.form = "NFKC" if mode == "compose" else "NFKD"

    def __call__(self, text: str) -> str:
        return unicodedata.normalize(self.form, text)


class HtmlStripFilter:
    """Remove markup, keeping text content and decoding entities.

    Text nodes are joined with newlines so words in adjacent elements are
    not glued together; ``script`` and ``style`` bodies and comments are dropped.
    """

    HIDDEN_TAGS = ("script", "style")

    def __call__(self, text: str) -> str:
        if "<" not in text and "&" not in text:
            return text
        soup = BeautifulSoup(text, "html.parser")
        for element in soup.find_all(list(self.HIDDEN_TAGS)):
            element.decompose()
        return soup.get_text("\n")


class PatternReplaceFilter:
    """Replace every match of ``pattern`` with ``replacement``."""

    def __init__(self, pattern: str, replacement: str = "", *, flags: int = 0) -> None:
        self.pattern = re.compile(pattern, flags)
        self.replacement = replacement

    def __call__(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


# ---------------------------------------------------------------------------
# Token filters (Iterable[Token] -> Iterator[Token])
# ---------------------------------------------------------------------------


class LowerCaseFilter:
    """Filter that lowercases token text."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text.islower() or not token.text:
                yield token
            else:
                yield token.copy_with(text=token.text.lower())


_HALFWIDTH_KATAKANA_START = 0xFF61
_HALFWIDTH_KATAKANA_END = 0xFF9F
_FULLWIDTH_ASCII_START = 0xFF01
_FULLWIDTH_ASCII_END = 0xFF5E
_FULLWIDTH_OFFSET = 0xFEE0
_VOICED_MARKS = {"\u3099", "\u309a"}


def _fold_width(text: str) -> str:
    folded: list[str] = []
    for char in text:
        code = ord(char)
        if _FULLWIDTH_ASCII_START <= code <= _FULLWIDTH_ASCII_END:
            folded.append(chr(code - _FULLWIDTH_OFFSET))
        elif _HALFWIDTH_KATAKANA_START <= code <= _HALFWIDTH_KATAKANA_END:
            mapped = unicodedata.normalize("NFKC", char)
            if mapped in _VOICED_MARKS and folded:
                composed = unicodedata.normalize("NFC", folded[-1] + mapped)
                if len(composed) == 1:
                    folded[-1] = composed
                    continue
            folded.append(mapped)
        else:
            folded.append(char)
    return "".join(folded)


class CJKWidthFilter:
    """Fold full-width ASCII to basic Latin and half-width katakana to full width.

    Half-width voiced sound marks are merged into the preceding kana
    (``ﾄﾞ`` becomes ``ド``).
    """

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            folded = _fold_width(token.text)
            yield token if folded == token.text else token.copy_with(text=folded)


ENGLISH_STOPWORDS: tuple[str, ...] = (
    "a",
    "an",
    "and",
    "are",
    "as",
    "at",
    "be",
    "but",
    "by",
    "for",
    "if",
    "in",
    "into",
    "is",
    "it",
    "no",
    "not",
    "of",
    "on",
    "or",
    "such",
    "that",
    "the",
    "their",
    "then",
    "there",
    "these",
    "they",
    "this",
    "to",
    "was",
    "will",
    "with",
)

PREDEFINED_STOPWORDS: dict[str, tuple[str, ...]] = {
    "_english_": ENGLISH_STOPWORDS,
    "_none_": (),
}


class StopFilter:
    """Removes stop words from the stream.

    ``stop_words`` is either the name of a predefined list (``_english_``)
    or a sequence mixing literal words and predefined list names.
    Matching is exact unless ``ignore_case`` is set, so the filter normally
    runs after :class:`LowerCaseFilter`.
    """

    def __init__(self, stop_words: str | Sequence[str] = "_english_", *, ignore_case: bool = False) -> None:
        words: set[str] = set()
        if isinstance(stop_words, str):
            if stop_words not in PREDEFINED_STOPWORDS:
                msg = f"Unknown stop word list '{stop_words}'. Available: {sorted(PREDEFINED_STOPWORDS)}"
                raise ConfigurationError(msg)
            words.update(PREDEFINED_STOPWORDS[stop_words])
        else:
            for word in stop_words:
                words.update(PREDEFINED_STOPWORDS.get(word, (word,)))
        self.ignore_case = ignore_case
        self.stop_words = frozenset(word.lower() for word in words) if ignore_case else frozenset(words)

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            text = token.text.lower() if self.ignore_case else token.text
            if text not in self.stop_words:
                yield token


class BaseFormFilter:
    """Replace each token with its dictionary form from morphological metadata."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            base_form = token.metadata.get("basic_form") if token.metadata else None
            if base_form and base_form != "*" and base_form != token.text:
                yield token.copy_with(text=base_form)
            else:
                yield token


# Lucene's default Japanese stop tags (lucene/analysis/kuromoji stoptags.txt)
DEFAULT_STOP_TAGS: frozenset[str] = frozenset(
    {
        "接続詞",
        "助詞",
        "助詞-格助詞",
        "助詞-格助詞-一般",
        "助詞-格助詞-引用",
        "助詞-格助詞-連語",
        "助詞-接続助詞",
        "助詞-係助詞",
        "助詞-副助詞",
        "助詞-間投助詞",
        "助詞-並立助詞",
        "助詞-終助詞",
        "助詞-副助詞／並立助詞／終助詞",
        "助詞-連体化",
        "助詞-副詞化",
        "助詞-特殊",
        "助動詞",
        "記号",
        "記号-一般",
        "記号-読点",
        "記号-句点",
        "記号-空白",
        "記号-括弧開",
        "記号-括弧閉",
        "その他-間投",
        "フィラー",
        "非言語音",
    }
)

_POS_KEYS = ("pos", "pos_detail_1", "pos_detail_2", "pos_detail_3")


class PartOfSpeechStopFilter:
    """Drop tokens whose hyphen-joined part-of-speech tag is a stop tag.

    Tokens without morphological metadata always pass through.
    """

    def __init__(self, stop_tags: Iterable[str] | None = None) -> None:
        self.stop_tags = frozenset(stop_tags) if stop_tags is not None else DEFAULT_STOP_TAGS

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if not token.metadata:
                yield token
                continue
            parts = [token.metadata.get(key) for key in _POS_KEYS]
            tag = "-".join(part for part in parts if part and part != "*")
            if tag not in self.stop_tags:
                yield token


_PROLONGED_SOUND_MARK = "ー"


def _is_katakana(text: str) -> bool:
    return all("\u30a0" <= char <= "\u30ff" for char in text)


class KatakanaStemFilter:
    """Strip a trailing prolonged sound mark from long katakana words."""

    def __init__(self, *, minimum_length: int = 4) -> None:
        self.minimum_length = minimum_length

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            text = token.text
            if len(text) >= self.minimum_length and text.endswith(_PROLONGED_SOUND_MARK) and _is_katakana(text):
                yield token.copy_with(text=text[:-1])
            else:
                yield token
