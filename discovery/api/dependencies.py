"""
Dependency injection container.
Creates and wires all engine components.
Uses FastAPI's dependency injection system.
"""
from functools import lru_cache

from discovery.config import get_settings
from discovery.core.cache import TTLCache
from discovery.core.circuit_breaker import CircuitBreaker
from discovery.repositories.memory import (
    InMemoryContentStore,
    InMemoryExperimentStore,
    InMemoryTelemetrySink,
    InMemoryTrendingStore,
)
from discovery.services.candidates import CandidateRetriever
from discovery.services.events import DiscoveryEventRecorder
from discovery.services.experiments import ExperimentManager
from discovery.services.ranking import RankingOrchestrator
from discovery.services.targeting import PopulationTargeting
from discovery.services.trending import TrendingCalculator, TrendingScheduler


# =============================================================================
# Singleton Instances (Application Lifetime)
# =============================================================================


@lru_cache()
def get_content_store() -> InMemoryContentStore:
    """Get singleton content store."""
    return InMemoryContentStore(seed_demo_content=get_settings().SEED_DEMO_CONTENT)


@lru_cache()
def get_trending_store() -> InMemoryTrendingStore:
    return InMemoryTrendingStore()


@lru_cache()
def get_experiment_store() -> InMemoryExperimentStore:
    return InMemoryExperimentStore()


@lru_cache()
def get_telemetry_sink() -> InMemoryTelemetrySink:
    return InMemoryTelemetrySink()


@lru_cache()
def get_stats_cache() -> TTLCache[float]:
    """Get singleton cache for global engagement statistics."""
    return TTLCache[float](default_ttl_seconds=get_settings().GLOBAL_STATS_TTL_SEC)


@lru_cache()
def get_events_circuit_breaker() -> CircuitBreaker:
    """Get singleton circuit breaker for the discovery event sink."""
    settings = get_settings()
    return CircuitBreaker(
        name="discovery_events",
        failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
        recovery_timeout_sec=settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT_SEC,
    )


@lru_cache()
def get_targeting() -> PopulationTargeting:
    return PopulationTargeting()


@lru_cache()
def get_trending_calculator() -> TrendingCalculator:
    """Get singleton trending calculator (one in-flight run per process)."""
    settings = get_settings()
    return TrendingCalculator(
        content_store=get_content_store(),
        trending_store=get_trending_store(),
        top_k=settings.TRENDING_TOP_K,
        min_score=settings.TRENDING_MIN_SCORE,
        page_size=settings.TRENDING_PAGE_SIZE,
    )


@lru_cache()
def get_trending_scheduler() -> TrendingScheduler:
    return TrendingScheduler(
        calculator=get_trending_calculator(),
        interval_minutes=get_settings().TRENDING_INTERVAL_MINUTES,
    )


@lru_cache()
def get_experiment_manager() -> ExperimentManager:
    """Get singleton experiment manager."""
    settings = get_settings()
    return ExperimentManager(
        store=get_experiment_store(),
        targeting=get_targeting(),
        min_sample_size=settings.EXPERIMENT_MIN_SAMPLE_SIZE,
        significance_level=settings.EXPERIMENT_SIGNIFICANCE_LEVEL,
    )


# =============================================================================
# Request-Scoped Dependencies (Per-Request Lifetime)
# =============================================================================


def get_ranking_orchestrator() -> RankingOrchestrator:
    """
    Get ranking orchestrator with all dependencies wired.
    This is the main entry point for the discovery endpoint.
    """
    settings = get_settings()
    retriever = CandidateRetriever(
        store=get_content_store(),
        pool_size=settings.CANDIDATE_POOL_SIZE,
        diverse_pool_size=settings.DIVERSE_POOL_SIZE,
        max_per_domain=settings.MAX_PER_DOMAIN,
        max_exclude_ids=settings.MAX_EXCLUDE_IDS,
        rotation_seconds=settings.ORDER_ROTATION_SEC,
    )
    return RankingOrchestrator(
        retriever=retriever,
        content_store=get_content_store(),
        event_recorder=DiscoveryEventRecorder(
            sink=get_telemetry_sink(),
            circuit_breaker=get_events_circuit_breaker(),
        ),
        stats_cache=get_stats_cache(),
        algorithm_version=settings.ALGORITHM_VERSION,
        default_global_engagement=settings.DEFAULT_GLOBAL_ENGAGEMENT,
        global_stats_ttl_sec=settings.GLOBAL_STATS_TTL_SEC,
        freshness_half_life_days=settings.FRESHNESS_HALF_LIFE_DAYS,
    )


# =============================================================================
# Cleanup Functions
# =============================================================================


def clear_caches() -> None:
    """Clear all cached singleton instances (for testing)."""
    get_content_store.cache_clear()
    get_trending_store.cache_clear()
    get_experiment_store.cache_clear()
    get_telemetry_sink.cache_clear()
    get_stats_cache.cache_clear()
    get_events_circuit_breaker.cache_clear()
    get_targeting.cache_clear()
    get_trending_calculator.cache_clear()
    get_trending_scheduler.cache_clear()
    get_experiment_manager.cache_clear()
