"""
Unit tests for content similarity.
"""
import math

import pytest

from discovery.services.similarity import (
    SimilarityContext,
    build_topic_relationships,
    cosine_similarity,
    domain_similarity,
    inverse_document_frequency,
    jaccard,
    multi_factor_similarity,
    term_frequency,
    tfidf_vector,
    top_k_similar,
)


class TestTopicOverlap:
    """Tests for Jaccard and TF-IDF helpers."""

    def test_jaccard_identical_sets(self):
        assert jaccard(["a", "b"], ["b", "a"]) == 1.0

    def test_jaccard_partial_overlap(self):
        assert jaccard(["a", "b"], ["b", "c"]) == pytest.approx(1 / 3)

    def test_jaccard_empty_side_is_zero(self):
        assert jaccard([], ["a"]) == 0.0
        assert jaccard(["a"], []) == 0.0
        assert jaccard([], []) == 0.0

    def test_term_frequency(self):
        assert term_frequency(["a", "a", "b", "c"]) == {"a": 0.5, "b": 0.25, "c": 0.25}
        assert term_frequency([]) == {}

    def test_idf_only_contains_corpus_topics(self):
        idf = inverse_document_frequency([["a", "b"], ["a"], ["c"]])

        assert idf["a"] == pytest.approx(math.log(3 / 2))
        assert idf["c"] == pytest.approx(math.log(3))
        assert "z" not in idf

    def test_topic_in_every_document_has_zero_weight(self):
        corpus = [["common", "x"], ["common", "y"]]

        assert tfidf_vector(["common", "x"], corpus) == {"x": pytest.approx(0.5 * math.log(2))}

    def test_cosine_of_zero_vector_is_zero(self):
        assert cosine_similarity({}, {"a": 1.0}) == 0.0

    def test_cosine_of_parallel_vectors_is_one(self):
        assert cosine_similarity({"a": 1.0, "b": 2.0}, {"a": 2.0, "b": 4.0}) == pytest.approx(1.0)


class TestDomainSimilarity:
    def test_same_domain(self):
        assert domain_similarity("a.com", "a.com") == 1.0

    def test_related_either_direction(self):
        related = {"a.com": ["b.com"]}

        assert domain_similarity("a.com", "b.com", related) == 0.5
        assert domain_similarity("b.com", "a.com", related) == 0.5

    def test_unrelated(self):
        assert domain_similarity("a.com", "c.com", {"a.com": ["b.com"]}) == 0.0


class TestMultiFactorSimilarity:
    """Tests for the weighted item-to-item score."""

    def test_identical_items_score_one(self, make_item):
        item = make_item("a", topics=["space"], domain="nasa.gov", quality=0.7)

        result = multi_factor_similarity(item, item)

        assert result.overall_score == pytest.approx(1.0)
        assert "tfidf_similarity" not in result.components

    def test_components_without_corpus(self, make_item):
        a = make_item("a", topics=["space", "physics"], domain="a.com", quality=0.9)
        b = make_item("b", topics=["space"], domain="b.com", quality=0.5)

        result = multi_factor_similarity(a, b)

        assert result.components["topic_similarity"] == pytest.approx(0.5)
        assert result.components["domain_similarity"] == 0.0
        assert result.components["quality_similarity"] == pytest.approx(0.6)
        assert result.components["length_similarity"] == pytest.approx(1.0)
        assert result.overall_score == pytest.approx(0.5 * 0.5 + 0.6 * 0.2 + 0.15)

    def test_corpus_switches_topic_score_to_tfidf(self, make_item):
        a = make_item("a", topics=["space", "common"])
        b = make_item("b", topics=["space", "other"])
        context = SimilarityContext(corpus=[["space", "common"], ["space", "other"], ["common"]])

        result = multi_factor_similarity(a, b, context)

        assert "tfidf_similarity" in result.components
        assert result.components["topic_similarity"] == result.components["tfidf_similarity"]

    def test_length_similarity_floors_at_zero(self, make_item):
        a = make_item("a", reading_time_minutes=1)
        b = make_item("b", reading_time_minutes=60)

        result = multi_factor_similarity(a, b)

        assert result.components["length_similarity"] == 0.0

    def test_idf_is_cached_on_context(self):
        context = SimilarityContext(corpus=[["a"], ["b"]])

        assert context.idf() is context.idf()


class TestTopicRelationships:
    def test_relationships_are_mutual_and_thresholded(self):
        corpus = [["a", "b"]] * 3 + [["a", "c"]] * 2

        relationships = build_topic_relationships(corpus, min_cooccurrence=3)

        assert relationships == {"a": ["b"], "b": ["a"]}


class TestTopKSimilar:
    def test_orders_and_excludes(self):
        matrix = {"a": {"a": 1.0, "b": 0.9, "c": 0.2, "d": 0.5}}

        top = top_k_similar("a", 2, matrix)

        assert top == [("b", 0.9), ("d", 0.5)]
        assert top_k_similar("a", 2, matrix, exclude_ids={"b"})[0][0] == "d"
        assert top_k_similar("missing", 2, matrix) == []
