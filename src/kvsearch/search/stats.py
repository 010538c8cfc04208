"""Statistical helpers for BM25 scoring.

The functions here only see numbers (document counts, token counts and
occurrences), never the store, so the ranking math can be unit tested in
isolation from the query planner.
"""

from __future__ import annotations

from dataclasses import dataclass
import math


DEFAULT_K1 = 1.2
DEFAULT_B = 0.75


@dataclass(frozen=True)
class BM25Params:
    """Saturation (``k1``) and length normalization (``b``) parameters."""

    k1: float = DEFAULT_K1
    b: float = DEFAULT_B


@dataclass(frozen=True)
class AttributeLengthStats:
    """Corpus-wide token statistics for one attribute."""

    attribute: str
    total_tokens: int
    document_count: int

    @property
    def is_known(self) -> bool:
        """Whether both counts are positive, so an average length exists."""
        return self.document_count > 0 and self.total_tokens > 0

    @property
    def average_length(self) -> float:
        if self.document_count <= 0:
            return 0.0
        return self.total_tokens / self.document_count


def calculate_idf(doc_freq: int, total_docs: int) -> float:
    """Return ``ln(1 + (N - df + 0.5) / (df + 0.5))``.

    The ``1 +`` inside the logarithm keeps the value positive even for
    tokens present in every document.
    """

    return math.log(1 + (total_docs - doc_freq + 0.5) / (doc_freq + 0.5))


def term_frequency(
    occurrence: int,
    document_length: int,
    average_length: float,
    *,
    k1: float = DEFAULT_K1,
    b: float = DEFAULT_B,
) -> float:
    """Length-normalized, saturated term frequency (BM25 without IDF and ``k1 + 1``).

    Callers must not pass a non-positive ``average_length``; the attribute
    has no length statistics in that case and cannot be scored.
    """

    if occurrence <= 0:
        return 0.0
    denominator = occurrence + k1 * (1 - b + b * (document_length / average_length))
    return occurrence / denominator


def bm25_score(
    occurrence: int,
    document_length: int,
    average_length: float,
    idf: float,
    *,
    boost: float = 1.0,
    params: BM25Params = BM25Params(),
) -> float:
    """Score one posting: ``boost * tf * idf * (k1 + 1)``."""

    tf = term_frequency(occurrence, document_length, average_length, k1=params.k1, b=params.b)
    return boost * tf * idf * (params.k1 + 1)
