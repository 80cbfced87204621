"""
Centralized configuration using Pydantic BaseSettings.
Every tunable of the ranking, trending and experiment services lives here.
"""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Discovery Engine"
    APP_VERSION: str = "2.0.0"
    DEBUG: bool = False
    ALGORITHM_VERSION: str = "v2.0"

    # Candidate retrieval
    CANDIDATE_POOL_SIZE: int = 500
    DIVERSE_POOL_SIZE: int = 300
    MAX_PER_DOMAIN: int = 20
    MAX_EXCLUDE_IDS: int = 200  # Larger exclusion sets are not pushed to the store
    ORDER_ROTATION_SEC: int = 3600

    # Scoring
    FRESHNESS_HALF_LIFE_DAYS: float = 14.0
    DEFAULT_GLOBAL_ENGAGEMENT: float = 0.3
    GLOBAL_STATS_TTL_SEC: int = 300

    # Trending
    TRENDING_SCHEDULER_ENABLED: bool = True
    TRENDING_INTERVAL_MINUTES: int = 15
    TRENDING_TOP_K: int = 100
    TRENDING_MIN_SCORE: float = 0.05
    TRENDING_PAGE_SIZE: int = 1000

    # Experiments
    EXPERIMENTS_KILL_SWITCH: bool = False
    EXPERIMENT_MIN_SAMPLE_SIZE: int = 100
    EXPERIMENT_SIGNIFICANCE_LEVEL: float = 0.05

    # Telemetry
    ENABLE_OTEL: bool = False  # Default to False to prevent gRPC errors in dev
    ENABLE_PROMETHEUS: bool = True

    # Circuit Breaker (discovery event sink)
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT_SEC: int = 30

    # Local runs
    SEED_DEMO_CONTENT: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance - singleton pattern."""
    return Settings()
