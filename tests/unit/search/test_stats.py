"""Unit tests for BM25 statistics helpers."""

import math

import pytest

from kvsearch.search.stats import AttributeLengthStats, BM25Params, bm25_score, calculate_idf, term_frequency


@pytest.mark.unit
class TestIdf:
    def test_single_document_single_match(self):
        assert calculate_idf(1, 1) == pytest.approx(math.log(4 / 3))

    def test_rarer_tokens_score_higher(self):
        assert calculate_idf(1, 100) > calculate_idf(50, 100)

    def test_positive_for_ubiquitous_tokens(self):
        assert calculate_idf(100, 100) > 0


@pytest.mark.unit
class TestTermFrequency:
    def test_fixture_value(self):
        assert term_frequency(1, 2, 2.0) == pytest.approx(1 / 2.2)

    @pytest.mark.parametrize("occurrence", [1, 2, 5, 50])
    def test_monotonic_in_occurrence(self, occurrence):
        lower = term_frequency(occurrence, 10, 8.0)
        higher = term_frequency(occurrence + 1, 10, 8.0)
        assert higher >= lower

    def test_longer_documents_are_penalized(self):
        assert term_frequency(1, 20, 10.0) < term_frequency(1, 5, 10.0)

    def test_zero_occurrence(self):
        assert term_frequency(0, 3, 2.0) == 0.0

    def test_b_zero_disables_length_normalization(self):
        assert term_frequency(2, 1, 10.0, b=0.0) == term_frequency(2, 100, 10.0, b=0.0)


@pytest.mark.unit
class TestBm25Score:
    def test_end_to_end_fixture(self):
        idf = calculate_idf(1, 1)
        total = 2 * bm25_score(1, 2, 2.0, idf)
        assert total == pytest.approx(0.5754, abs=1e-4)

    def test_boost_is_linear(self):
        idf = calculate_idf(3, 10)
        single = bm25_score(2, 7, 5.0, idf, boost=1.0)
        assert bm25_score(2, 7, 5.0, idf, boost=2.0) == pytest.approx(2 * single)

    def test_custom_params(self):
        idf = calculate_idf(1, 1)
        params = BM25Params(k1=2.0, b=0.0)
        assert bm25_score(1, 2, 2.0, idf, params=params) == pytest.approx(1 / 3 * idf * 3)


@pytest.mark.unit
def test_attribute_length_stats():
    assert AttributeLengthStats("Message", 10, 4).average_length == 2.5
    assert AttributeLengthStats("Message", 10, 0).average_length == 0.0


@pytest.mark.unit
def test_attribute_length_stats_known_only_with_positive_counts():
    assert AttributeLengthStats("Message", 10, 4).is_known
    assert not AttributeLengthStats("Message", 0, 4).is_known
    assert not AttributeLengthStats("Message", 10, 0).is_known
