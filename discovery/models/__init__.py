"""Models package - domain entities and interfaces."""
from .experiments import (
    Assignment,
    Experiment,
    ExperimentAction,
    ExperimentDefinition,
    ExperimentEvent,
    ExperimentResults,
    ExperimentStatus,
    ExperimentVariant,
    ExplorationScoringConfig,
    FreshnessBoostScoringConfig,
    Recommendation,
    RecommendationKind,
    ScoringConfig,
    SignificanceResult,
    StandardScoringConfig,
    TrafficAllocation,
    VariantMetrics,
)
from .interfaces import (
    ContentStore,
    ExperimentStore,
    ExperimentTargeting,
    RandomSource,
    TelemetrySink,
    TrendingStore,
)
from .schemas import (
    ContentFilter,
    ContentItem,
    ContentMetrics,
    ContentOrder,
    DiscoveryEvent,
    DiscoveryResult,
    EngagementHistory,
    InteractionHistory,
    ScoredCandidate,
    TopicWeight,
    TrendingRunSummary,
    TrendingSnapshot,
    TrendingWindow,
    UserContext,
)

__all__ = [
    # Interfaces
    "ContentStore",
    "ExperimentStore",
    "ExperimentTargeting",
    "RandomSource",
    "TelemetrySink",
    "TrendingStore",
    # Content & ranking
    "ContentFilter",
    "ContentItem",
    "ContentMetrics",
    "ContentOrder",
    "DiscoveryEvent",
    "DiscoveryResult",
    "EngagementHistory",
    "InteractionHistory",
    "ScoredCandidate",
    "TopicWeight",
    "TrendingRunSummary",
    "TrendingSnapshot",
    "TrendingWindow",
    "UserContext",
    # Experiments
    "Assignment",
    "Experiment",
    "ExperimentAction",
    "ExperimentDefinition",
    "ExperimentEvent",
    "ExperimentResults",
    "ExperimentStatus",
    "ExperimentVariant",
    "ExplorationScoringConfig",
    "FreshnessBoostScoringConfig",
    "Recommendation",
    "RecommendationKind",
    "ScoringConfig",
    "SignificanceResult",
    "StandardScoringConfig",
    "TrafficAllocation",
    "VariantMetrics",
]
