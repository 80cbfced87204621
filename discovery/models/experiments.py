"""
Experiment domain models.
Variants carry a typed scoring configuration selected by ``strategy``.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from discovery.models.schemas import utcnow


# =============================================================================
# Scoring configurations (variant payloads)
# =============================================================================


class StandardScoringConfig(BaseModel):
    """Default ranking: 14-day freshness half-life, user-chosen wildness."""

    strategy: Literal["standard"] = "standard"
    freshness_half_life_days: float = Field(default=14.0, gt=0)


class FreshnessBoostScoringConfig(BaseModel):
    """Faster freshness decay so recent items dominate."""

    strategy: Literal["freshness_boost"] = "freshness_boost"
    freshness_half_life_days: float = Field(default=7.0, gt=0)


class ExplorationScoringConfig(BaseModel):
    """Raises every user's wildness to at least ``wildness_floor``."""

    strategy: Literal["exploration"] = "exploration"
    wildness_floor: int = Field(default=50, ge=0, le=100)
    freshness_half_life_days: float = Field(default=14.0, gt=0)


ScoringConfig = Annotated[
    Union[StandardScoringConfig, FreshnessBoostScoringConfig, ExplorationScoringConfig],
    Field(discriminator="strategy"),
]


# =============================================================================
# Experiment definition and lifecycle
# =============================================================================


class ExperimentStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class ExperimentVariant(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    config: ScoringConfig = Field(default_factory=StandardScoringConfig)


class TrafficAllocation(BaseModel):
    variant_name: str
    percentage: float = Field(..., ge=0, le=100)


class ExperimentDefinition(BaseModel):
    """Input to ``ExperimentManager.create_experiment``."""

    name: str = Field(..., min_length=1)
    description: str = ""
    variants: List[ExperimentVariant] = Field(..., min_length=1)
    traffic_allocation: List[TrafficAllocation] = Field(..., min_length=1)
    target_user_percentage: float = Field(default=100.0, ge=0, le=100)
    include_new_users: bool = True
    include_existing_users: bool = True


class Experiment(ExperimentDefinition):
    id: str
    status: ExperimentStatus = ExperimentStatus.DRAFT
    created_by: str = "system"
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    winner_variant: Optional[str] = None
    confidence_level: Optional[float] = None

    def variant(self, name: str) -> Optional[ExperimentVariant]:
        return next((v for v in self.variants if v.name == name), None)


class Assignment(BaseModel):
    """Sticky (user, experiment) -> variant mapping. Never updated."""

    user_id: str
    experiment_id: str
    variant_name: str
    assigned_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# Events and metrics
# =============================================================================


class ExperimentAction(str, Enum):
    SHOWN = "shown"
    LIKED = "liked"
    SAVED = "saved"
    SHARED = "shared"
    SKIPPED = "skipped"


class ExperimentEvent(BaseModel):
    """Append-only experiment log row."""

    experiment_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    variant_name: str = Field(..., min_length=1)
    action: ExperimentAction
    content_id: Optional[str] = None
    discovery_score: Optional[float] = None
    time_to_action: Optional[float] = Field(default=None, ge=0, description="Seconds")
    wildness_setting: Optional[int] = Field(default=None, ge=0, le=100)
    session_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class VariantMetrics(BaseModel):
    variant_name: str
    total_users: int = 0
    total_discoveries: int = 0
    like_count: int = 0
    save_count: int = 0
    share_count: int = 0
    skip_count: int = 0
    engaged_count: int = 0
    like_rate: float = 0.0
    save_rate: float = 0.0
    skip_rate: float = 0.0
    engagement_rate: float = 0.0
    avg_discovery_score: Optional[float] = None
    avg_time_to_action: Optional[float] = None
    standard_error: float = 0.0
    confidence_interval_lower: float = 0.0
    confidence_interval_upper: float = 0.0


class SignificanceResult(BaseModel):
    variant_a: str
    variant_b: str
    variant_a_rate: float
    variant_b_rate: float
    difference: float
    z_statistic: float
    p_value: float
    is_significant: bool


class RecommendationKind(str, Enum):
    SIGNIFICANT_WIN = "significant_win"
    LEADING_NOT_SIGNIFICANT = "leading_not_significant"
    INSUFFICIENT_DATA = "insufficient_data"


class Recommendation(BaseModel):
    kind: RecommendationKind
    winner_variant: str
    confidence: float
    reason: str


class ExperimentResults(BaseModel):
    experiment: Experiment
    metrics: List[VariantMetrics]
    comparisons: List[SignificanceResult]
    recommendation: Optional[Recommendation] = None


# =============================================================================
# API Models (External)
# =============================================================================


class CompleteExperimentRequest(BaseModel):
    winner_variant: Optional[str] = None
    confidence_level: Optional[float] = Field(default=None, ge=0, le=100)


class AssignmentResponse(BaseModel):
    experiment_id: str
    user_id: str
    variant_name: Optional[str] = None
