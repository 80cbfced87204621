"""
Scoring functions for discovery ranking.

Freshness, Bayesian-smoothed engagement, popularity, user similarity,
exploration boost, the combined ranking score, trending velocity and the
human-readable reason attached to each discovery. All functions are pure;
randomness comes only from an injected ``RandomSource``.
"""
import math
import random
from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Sequence, Set

from discovery.models.interfaces import RandomSource
from discovery.models.schemas import (
    ContentItem,
    ContentMetrics,
    InteractionHistory,
    TopicWeight,
    TrendingWindow,
    UserContext,
    utcnow,
)

DEFAULT_HALF_LIFE_DAYS = 14.0
DEFAULT_PRIOR = 0.5
DEFAULT_PRIOR_WEIGHT = 10
DEFAULT_GLOBAL_ENGAGEMENT = 0.3

SECONDS_PER_DAY = 86400.0

_default_rng = random.Random()


def age_days(created_at: datetime, now: Optional[datetime] = None) -> float:
    """Fractional days between ``created_at`` and ``now``; never negative."""
    now = now or utcnow()
    return max(0.0, (now - created_at).total_seconds() / SECONDS_PER_DAY)


def freshness(age: float, half_life_days: float = DEFAULT_HALF_LIFE_DAYS) -> float:
    """exp(-ln2 · age / half_life): 1 at age 0, 0.5 at one half-life."""
    return math.exp(-math.log(2) * age / half_life_days)


def bayesian_smooth(
    positive_count: float,
    total_count: float,
    prior: float = DEFAULT_PRIOR,
    prior_weight: float = DEFAULT_PRIOR_WEIGHT,
) -> float:
    """Blend an observed rate with ``prior`` worth ``prior_weight`` observations."""
    if total_count == 0:
        return prior
    return (positive_count + prior * prior_weight) / (total_count + prior_weight)


def engagement_score(metrics: ContentMetrics) -> float:
    """
    Smoothed positive-interaction rate in [0.1, 1.0].

    Saves count 1.2x and shares 0.8x a like; skips only add to the total.
    Items with no interactions score a neutral 0.5.
    """
    total = (
        metrics.likes_count
        + metrics.saves_count
        + metrics.shares_count
        + metrics.skip_count
    )
    if total == 0:
        return 0.5

    positive = (
        metrics.likes_count
        + metrics.saves_count * 1.2
        + metrics.shares_count * 0.8
    )
    smoothed = bayesian_smooth(positive, total, DEFAULT_PRIOR, DEFAULT_PRIOR_WEIGHT)
    return max(0.1, min(1.0, smoothed))


def popularity_score(
    metrics: ContentMetrics,
    age: float,
    global_avg_engagement: float = DEFAULT_GLOBAL_ENGAGEMENT,
) -> float:
    """Engagement relative to the global average plus a 7-day recency bonus, capped at 1."""
    relative = engagement_score(metrics) / max(0.1, global_avg_engagement)
    recency_boost = math.exp(-age / 7) * 0.3
    return min(1.0, relative + recency_boost)


def similarity_to_user(
    user_topics: Iterable[str],
    content_topics: Sequence[TopicWeight],
) -> float:
    """
    Confidence-weighted topic match between a user and an item.

    Returns 0.3 for users with no preferences and 0.2 for uncategorized
    content; otherwise 0.3 + 0.7 · matched confidence / total confidence.
    Missing or zero confidences count as 0.5.
    """
    user_topics = set(user_topics)
    if not user_topics:
        return 0.3
    if not content_topics:
        return 0.2

    total_weight = 0.0
    match_weight = 0.0
    for topic in content_topics:
        confidence = topic.confidence or 0.5
        total_weight += confidence
        if topic.name in user_topics:
            match_weight += confidence

    if total_weight == 0:
        return 0.2

    return 0.3 + 0.7 * (match_weight / total_weight)


def exploration_boost(
    wildness: int,
    base_similarity: float,
    popularity: float = 0.5,
    rng: Optional[RandomSource] = None,
) -> float:
    """
    Trade relevance for diversity according to ``wildness``.

    Below 20 the result is driven by similarity; from 20 to 69 similarity and
    diversity are blended linearly; from 70 up dissimilar, less popular items
    are favoured and a random term in [0, 0.3) is injected.
    """
    if wildness < 20:
        return base_similarity * (0.8 + 0.2 * popularity)

    if wildness < 70:
        exploration_weight = (wildness - 20) / 50
        similarity_part = base_similarity * (1 - exploration_weight * 0.3)
        diversity_part = (1 - base_similarity) * exploration_weight * 0.5
        return similarity_part + diversity_part + popularity * 0.2

    rng = rng or _default_rng
    diversity_bonus = (1 - base_similarity) * 0.7
    popularity_penalty = popularity * -0.2
    random_boost = rng.random() * 0.3
    return max(0.1, base_similarity * 0.4 + diversity_bonus + popularity_penalty + random_boost)


def combined_score(
    base: float,
    quality: float,
    freshness_score: float,
    popularity: float,
    similarity: float,
    context: UserContext,
    rng: Optional[RandomSource] = None,
) -> float:
    """
    Final ranking score in [0, 1].

    base·quality · (0.5 + 0.5·similarity) · (0.6 + 0.4·freshness) · popularity,
    plus an epsilon-greedy bonus, then contextual multipliers.
    """
    rng = rng or _default_rng

    score = (
        base * quality
        * (0.5 + 0.5 * similarity)
        * (0.6 + 0.4 * freshness_score)
        * popularity
    )

    # Epsilon-greedy: 5% at wildness 0 up to 10% at wildness 100
    exploration_rate = 0.05 + (context.wildness / 100) * 0.05
    if rng.random() < exploration_rate:
        score += rng.random() * 0.3

    multiplier = 1.0

    if context.time_of_day is not None and 18 <= context.time_of_day <= 22:
        multiplier *= 1 + (1 - similarity) * 0.1

    history = context.engagement_history
    if history is not None:
        if history.skip_rate > 0.5:
            multiplier *= 1 + (1 - similarity) * 0.15
        if history.like_rate > 0.6:
            multiplier *= 1 + similarity * 0.1

    return max(0.0, min(1.0, score * multiplier))


_WINDOW_DECAY = {
    TrendingWindow.HOUR: lambda age: math.exp(-age * 24 / 2),
    TrendingWindow.DAY: lambda age: math.exp(-age),
    TrendingWindow.WEEK: lambda age: math.exp(-age / 3),
}


def trending_score(
    metrics: ContentMetrics,
    age: float,
    window: TrendingWindow = TrendingWindow.DAY,
) -> float:
    """Interaction velocity · window decay · view-volume confidence. 0 when unviewed."""
    views = metrics.views_count
    if views <= 0:
        return 0.0

    interactions = metrics.likes_count + metrics.saves_count + metrics.shares_count
    velocity = interactions / views
    decay = _WINDOW_DECAY[TrendingWindow(window)](age)
    return velocity * decay * min(1.0, views / 100)


def generate_reason(
    item: ContentItem,
    user_topics: Iterable[str],
    score: float,
    context: UserContext,
    now: Optional[datetime] = None,
) -> str:
    """Pick the first matching explanation template, in priority order."""
    user_topics = set(user_topics)
    matching = matched_topics(item.topics, user_topics)

    age = age_days(item.created_at, now)
    is_recent = age < 2
    is_very_recent = age < 0.5
    is_high_quality = item.quality_score > 0.8
    is_popular = item.popularity_score > 0.7
    is_trending = item.trending_score > 0.6
    high_wildness = context.wildness > 70

    if is_very_recent and is_trending:
        return "🔥 Breaking: trending content from the last few hours"
    if len(matching) > 1 and is_recent:
        return f"Recent {' & '.join(matching[:2])} content matching your interests"
    if is_trending and matching:
        return f"📈 Trending {matching[0]} content people are loving"
    if is_popular and is_high_quality and matching:
        return f"⭐ Popular high-quality {matching[0]} content"
    if matching and is_high_quality:
        return f"Quality {matching[0]} content curated for you"
    if is_recent and is_high_quality:
        return "Fresh, high-quality content to explore"
    if high_wildness and not matching:
        return "🎲 Serendipitous discovery - time to explore something new!"
    if matching:
        return f"Based on your interest in {' and '.join(matching[:2])}"
    if is_high_quality:
        return "Curated high-quality content"
    if high_wildness:
        return "Wild discovery based on your exploration settings"
    return "Recommended content to discover"


# =============================================================================
# Interaction-history personalization
# =============================================================================


def topic_affinity(
    content_topics: Sequence[str],
    liked_topics: Mapping[str, int],
    disliked_topics: Mapping[str, int],
) -> float:
    """Net liked-vs-disliked weight of the item's topics, 0.5 when there is no history."""
    if not content_topics:
        return 0.5

    positive = 0.0
    negative = 0.0
    total = 0.0
    for topic in content_topics:
        likes = liked_topics.get(topic, 0)
        dislikes = disliked_topics.get(topic, 0)
        positive += likes
        negative += dislikes
        total += likes + dislikes

    if total == 0:
        return 0.5

    net = (positive - negative * 0.5) / total
    return max(0.0, min(1.0, 0.5 + net * 0.5))


def domain_affinity(domain: str, liked_domains: Mapping[str, int]) -> float:
    """Diminishing boost for domains the user liked before."""
    interactions = liked_domains.get(domain, 0)
    if interactions == 0:
        return 0.5
    return min(1.0, 0.5 + math.log(interactions + 1) * 0.2)


def personalization_score(
    content_topics: Sequence[str],
    content_domain: str,
    history: InteractionHistory,
    domain_reputation: float,
) -> float:
    topic_part = topic_affinity(content_topics, history.liked_topics, history.disliked_topics)
    domain_part = domain_affinity(content_domain, history.liked_domains)
    score = topic_part * 0.6 + domain_part * 0.2 + domain_reputation * 0.2
    return max(0.0, min(1.0, score))


def matched_topics(item_topics: Iterable[str], user_topics: Set[str]) -> List[str]:
    """Item topics the user prefers, in the item's order."""
    return [t for t in item_topics if t in user_topics]
