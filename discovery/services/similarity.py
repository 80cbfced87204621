"""
Content similarity functions.
Topic overlap (Jaccard, TF-IDF cosine), domain relatedness and a weighted
multi-factor score between two content items. Everything here is pure.
"""
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from discovery.models.schemas import ContentItem

# Multi-factor weights
TOPIC_WEIGHT = 0.50
DOMAIN_WEIGHT = 0.15
QUALITY_WEIGHT = 0.20
LENGTH_WEIGHT = 0.15

READING_TIME_NORMALIZER_MIN = 30.0

SAME_DOMAIN = 1.0
RELATED_DOMAIN = 0.5


@dataclass
class SimilarityContext:
    """Optional corpus-level inputs for ``multi_factor_similarity``."""

    corpus: Optional[Sequence[Iterable[str]]] = None
    related_domains: Optional[Mapping[str, Sequence[str]]] = None
    _idf: Optional[Dict[str, float]] = field(default=None, repr=False)

    def idf(self) -> Dict[str, float]:
        """IDF over ``corpus``, computed once per context."""
        if self._idf is None:
            self._idf = inverse_document_frequency(self.corpus or [])
        return self._idf


@dataclass
class SimilarityResult:
    overall_score: float
    components: Dict[str, float]


def jaccard(topics_a: Iterable[str], topics_b: Iterable[str]) -> float:
    """|A ∩ B| / |A ∪ B|; 0 when either side is empty."""
    set_a, set_b = set(topics_a), set(topics_b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def term_frequency(item_topics: Sequence[str]) -> Dict[str, float]:
    """Share of each topic within the item's topic multiset."""
    total = len(item_topics)
    if total == 0:
        return {}
    return {topic: count / total for topic, count in Counter(item_topics).items()}


def inverse_document_frequency(corpus: Sequence[Iterable[str]]) -> Dict[str, float]:
    """
    ln(|corpus| / documents containing topic).

    Only topics that occur in the corpus get an entry; look up absent topics
    with ``.get(topic, 0.0)``.
    """
    total_documents = len(corpus)
    if total_documents == 0:
        return {}

    document_counts: Counter = Counter()
    for document in corpus:
        document_counts.update(set(document))

    return {
        topic: math.log(total_documents / count)
        for topic, count in document_counts.items()
    }


def tfidf_vector(
    item_topics: Sequence[str],
    corpus: Sequence[Iterable[str]],
    idf: Optional[Mapping[str, float]] = None,
) -> Dict[str, float]:
    """tf·idf per topic, non-zero entries only. Pass ``idf`` to reuse a precomputed table."""
    idf = idf if idf is not None else inverse_document_frequency(corpus)
    vector = {}
    for topic, tf in term_frequency(item_topics).items():
        weight = tf * idf.get(topic, 0.0)
        if weight != 0.0:
            vector[topic] = weight
    return vector


def cosine_similarity(vector_a: Mapping[str, float], vector_b: Mapping[str, float]) -> float:
    """Cosine over the union of keys; 0 when either magnitude is 0."""
    dot = 0.0
    magnitude_a = 0.0
    magnitude_b = 0.0
    for key in set(vector_a) | set(vector_b):
        a = vector_a.get(key, 0.0)
        b = vector_b.get(key, 0.0)
        dot += a * b
        magnitude_a += a * a
        magnitude_b += b * b

    denominator = math.sqrt(magnitude_a) * math.sqrt(magnitude_b)
    if denominator == 0:
        return 0.0
    return dot / denominator


def domain_similarity(
    domain_a: str,
    domain_b: str,
    related_domains: Optional[Mapping[str, Sequence[str]]] = None,
) -> float:
    """1.0 for the same domain, 0.5 for related domains (either direction), else 0."""
    if domain_a == domain_b:
        return SAME_DOMAIN
    if related_domains:
        if domain_b in related_domains.get(domain_a, ()) or domain_a in related_domains.get(domain_b, ()):
            return RELATED_DOMAIN
    return 0.0


def multi_factor_similarity(
    item_a: ContentItem,
    item_b: ContentItem,
    context: Optional[SimilarityContext] = None,
) -> SimilarityResult:
    """
    Weighted similarity between two items.

    Topic similarity uses TF-IDF cosine when a corpus is supplied, Jaccard
    otherwise. Components are returned alongside the clamped overall score.
    """
    jaccard_score = jaccard(item_a.topics, item_b.topics)

    tfidf_score: Optional[float] = None
    if context is not None and context.corpus is not None:
        idf = context.idf()
        tfidf_score = cosine_similarity(
            tfidf_vector(item_a.topics, context.corpus, idf),
            tfidf_vector(item_b.topics, context.corpus, idf),
        )

    related = context.related_domains if context is not None else None
    domain_score = domain_similarity(item_a.domain, item_b.domain, related)

    quality_score = 1 - abs(item_a.quality_score - item_b.quality_score)

    time_diff = abs(item_a.reading_time_minutes - item_b.reading_time_minutes)
    length_score = max(0.0, 1 - time_diff / READING_TIME_NORMALIZER_MIN)

    topic_score = tfidf_score if tfidf_score is not None else jaccard_score

    overall = (
        topic_score * TOPIC_WEIGHT
        + domain_score * DOMAIN_WEIGHT
        + quality_score * QUALITY_WEIGHT
        + length_score * LENGTH_WEIGHT
    )

    components = {
        "topic_similarity": topic_score,
        "domain_similarity": domain_score,
        "quality_similarity": quality_score,
        "length_similarity": length_score,
    }
    if tfidf_score is not None:
        components["tfidf_similarity"] = tfidf_score

    return SimilarityResult(
        overall_score=max(0.0, min(1.0, overall)),
        components=components,
    )


def build_topic_relationships(
    corpus: Sequence[Iterable[str]],
    min_cooccurrence: int = 3,
) -> Dict[str, List[str]]:
    """Topics co-occurring in at least ``min_cooccurrence`` items become mutually related."""
    pair_counts: Counter = Counter()
    for document in corpus:
        unique = sorted(set(document))
        for i, topic_a in enumerate(unique):
            for topic_b in unique[i + 1:]:
                pair_counts[(topic_a, topic_b)] += 1

    relationships: Dict[str, Set[str]] = {}
    for (topic_a, topic_b), count in pair_counts.items():
        if count >= min_cooccurrence:
            relationships.setdefault(topic_a, set()).add(topic_b)
            relationships.setdefault(topic_b, set()).add(topic_a)

    return {topic: sorted(related) for topic, related in relationships.items()}


def top_k_similar(
    content_id: str,
    k: int,
    matrix: Mapping[str, Mapping[str, float]],
    exclude_ids: Optional[Set[str]] = None,
) -> List[Tuple[str, float]]:
    """The ``k`` most similar ids to ``content_id`` from a precomputed matrix."""
    row = matrix.get(content_id)
    if not row:
        return []

    exclude_ids = exclude_ids or set()
    scored = [
        (other_id, score)
        for other_id, score in row.items()
        if other_id != content_id and other_id not in exclude_ids
    ]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:k]
