"""
Domain models using Pydantic.
Content, user context, ranking results and trending snapshots.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# Content
# =============================================================================


class TopicWeight(BaseModel):
    """Topic tag with classifier confidence."""

    name: str
    confidence: Optional[float] = Field(default=None, ge=0, le=1)


class ContentItem(BaseModel):
    """
    Content candidate as read from the content store.
    Score fields are recomputed out-of-band; the engine never writes them.
    """

    id: str = Field(..., description="Unique content identifier")
    url: str = Field(..., description="Canonical URL")
    title: str = Field(default="", description="Display title")
    domain: str = Field(..., description="Source domain")
    topics: List[str] = Field(default_factory=list, description="Topic tags")
    topic_weights: List[TopicWeight] = Field(
        default_factory=list,
        description="Per-topic confidence, when classified",
    )
    quality_score: float = Field(default=0.5, ge=0, le=1)
    base_score: float = Field(default=0.5, ge=0, le=1)
    popularity_score: float = Field(default=0.5, ge=0, le=1)
    trending_score: float = Field(default=0.0, ge=0, description="Last trending snapshot score")
    reading_time_minutes: float = Field(default=5.0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    is_active: bool = True

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def weighted_topics(self) -> List[TopicWeight]:
        """Topic weights if classified, else the bare tags with unknown confidence."""
        if self.topic_weights:
            return self.topic_weights
        return [TopicWeight(name=t) for t in self.topics]


class ContentMetrics(BaseModel):
    """Per-item interaction counters."""

    views_count: int = Field(default=0, ge=0)
    likes_count: int = Field(default=0, ge=0)
    saves_count: int = Field(default=0, ge=0)
    shares_count: int = Field(default=0, ge=0)
    skip_count: int = Field(default=0, ge=0)
    engagement_rate: float = Field(default=0.0, ge=0)


class ContentOrder(str, Enum):
    """Store-level base ordering for candidate queries."""

    CREATED_AT = "created_at"
    QUALITY = "quality_score"


class ContentFilter(BaseModel):
    """Filter pushed down to ``ContentStore.query_active_content``."""

    exclude_ids: Set[str] = Field(default_factory=set)
    exclude_domains: Set[str] = Field(default_factory=set)


# =============================================================================
# User context
# =============================================================================


class EngagementHistory(BaseModel):
    """Aggregate interaction rates for a user."""

    like_rate: float = Field(default=0.0, ge=0, le=1)
    save_rate: float = Field(default=0.0, ge=0, le=1)
    skip_rate: float = Field(default=0.0, ge=0, le=1)


class InteractionHistory(BaseModel):
    """Counts of a user's positive/negative interactions by topic and domain."""

    liked_topics: Dict[str, int] = Field(default_factory=dict)
    disliked_topics: Dict[str, int] = Field(default_factory=dict)
    liked_domains: Dict[str, int] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.liked_topics


class UserContext(BaseModel):
    """Per-request personalization inputs."""

    preferred_topics: Set[str] = Field(default_factory=set)
    wildness: int = Field(default=35, ge=0, le=100)
    engagement_history: Optional[EngagementHistory] = None
    interaction_history: Optional[InteractionHistory] = None
    time_of_day: Optional[int] = Field(default=None, ge=0, le=23)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    blocked_domains: Set[str] = Field(default_factory=set)


# =============================================================================
# Ranking results
# =============================================================================


class ScoredCandidate(BaseModel):
    """Transient scoring result for one candidate."""

    item: ContentItem
    age_days: float
    freshness: float
    similarity: float
    personalization: float
    popularity: float
    final_score: float
    reason: Optional[str] = None


class DiscoveryResult(BaseModel):
    """Selected discovery returned by ``RankingOrchestrator.next``."""

    item: ContentItem
    score: float
    reason: str
    rank: int = 1
    algorithm: str
    candidate_count: int = 0


class SimilarItem(BaseModel):
    item: ContentItem
    similarity: float
    components: Dict[str, float] = Field(default_factory=dict)


class DiscoveryEvent(BaseModel):
    """Telemetry row written for every served discovery."""

    user_id: str
    content_id: str
    session_id: Optional[str] = None
    algorithm: str
    wildness: int
    base_score: float
    final_score: float
    rank: int
    created_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# Trending
# =============================================================================


class TrendingWindow(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"


class TrendingSnapshot(BaseModel):
    """One live trending row per (content_id, time_window)."""

    content_id: str
    time_window: TrendingWindow
    interaction_count: int
    like_count: int
    save_count: int
    share_count: int
    trending_score: float
    calculated_at: datetime


class TrendingRunSummary(BaseModel):
    """Outcome of one ``TrendingCalculator.run_once`` call."""

    skipped: bool = False
    items_considered: int = 0
    windows_written: Dict[str, int] = Field(default_factory=dict)
    errors: Dict[str, str] = Field(default_factory=dict)
    duration_ms: float = 0.0


# =============================================================================
# API Models (External)
# =============================================================================


class NextDiscoveryRequest(BaseModel):
    """Body of ``POST /v1/discoveries/next``."""

    wildness: int = Field(..., ge=0, le=100)
    seen_ids: List[str] = Field(default_factory=list)
    preferred_topics: List[str] = Field(default_factory=list)
    blocked_domains: List[str] = Field(default_factory=list)
    engagement_history: Optional[EngagementHistory] = None
    experiment_id: Optional[str] = None
    session_id: Optional[str] = None


class NextDiscoveryResponse(BaseModel):
    discovery: ContentItem
    score: float
    reason: str
    algorithm: str
    variant: Optional[str] = None


class TrendingResponse(BaseModel):
    time_window: TrendingWindow
    items: List[TrendingSnapshot]
    count: int


class SimilarResponse(BaseModel):
    reference_id: str
    similar: List[SimilarItem]
    count: int


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: Dict[str, object] = Field(..., description="Error details")
