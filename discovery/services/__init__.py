"""Services package - ranking, trending and experiment logic."""
from . import scoring, similarity, statistics
from .candidates import CandidateRetriever
from .events import DiscoveryEventRecorder
from .experiments import ExperimentManager
from .ranking import (
    ExplorationScoring,
    FreshnessBoostScoring,
    RankingOrchestrator,
    ScoringStrategy,
    StandardScoring,
    build_scoring_strategy,
)
from .targeting import PopulationTargeting
from .trending import TrendingCalculator, TrendingScheduler, compute_window

__all__ = [
    "CandidateRetriever",
    "DiscoveryEventRecorder",
    "ExperimentManager",
    "ExplorationScoring",
    "FreshnessBoostScoring",
    "PopulationTargeting",
    "RankingOrchestrator",
    "ScoringStrategy",
    "StandardScoring",
    "TrendingCalculator",
    "TrendingScheduler",
    "build_scoring_strategy",
    "compute_window",
    "scoring",
    "similarity",
    "statistics",
]
