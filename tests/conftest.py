"""
Pytest configuration and fixtures.
"""
import os

os.environ.setdefault("TRENDING_SCHEDULER_ENABLED", "false")
os.environ.setdefault("SEED_DEMO_CONTENT", "true")

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from discovery.api.dependencies import clear_caches  # noqa: E402
from discovery.main import app  # noqa: E402
from discovery.models.experiments import (  # noqa: E402
    ExperimentDefinition,
    ExperimentVariant,
    FreshnessBoostScoringConfig,
    StandardScoringConfig,
    TrafficAllocation,
)
from discovery.models.schemas import ContentItem, ContentMetrics  # noqa: E402
from discovery.repositories.memory import (  # noqa: E402
    InMemoryContentStore,
    InMemoryExperimentStore,
    InMemoryTelemetrySink,
    InMemoryTrendingStore,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FixedRandom:
    """RandomSource returning a fixed sequence of values, cycling when exhausted."""

    def __init__(self, *values: float) -> None:
        self._values = list(values) or [0.5]
        self._index = 0
        self.calls = 0

    def random(self) -> float:
        value = self._values[self._index % len(self._values)]
        self._index += 1
        self.calls += 1
        return value


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def no_exploration_rng():
    """Never triggers the epsilon-greedy bonus and adds nothing at high wildness."""
    return FixedRandom(0.99)


@pytest.fixture
def fixed_random():
    """Factory for deterministic random sources."""
    return FixedRandom


@pytest.fixture
def make_item():
    """Factory for content items aged relative to NOW."""

    def _make(
        item_id: str,
        topics=("tech",),
        age_days: float = 0.0,
        quality: float = 0.5,
        domain: str = None,
        **kwargs,
    ) -> ContentItem:
        return ContentItem(
            id=item_id,
            url=f"https://{domain or 'example.com'}/{item_id}",
            domain=domain or f"{item_id}.example.com",
            topics=list(topics),
            quality_score=quality,
            created_at=NOW - timedelta(days=age_days),
            **kwargs,
        )

    return _make


@pytest.fixture
def content_store():
    """Empty in-memory content store."""
    return InMemoryContentStore()


@pytest.fixture
def trending_store():
    return InMemoryTrendingStore()


@pytest.fixture
def experiment_store():
    return InMemoryExperimentStore()


@pytest.fixture
def telemetry_sink():
    return InMemoryTelemetrySink()


@pytest.fixture
def sample_metrics():
    """Metrics for a well-engaged item."""
    return ContentMetrics(
        views_count=200,
        likes_count=40,
        saves_count=10,
        shares_count=5,
        skip_count=20,
        engagement_rate=0.275,
    )


@pytest.fixture
def ab_definition():
    """Two-variant 50/50 experiment definition."""
    return ExperimentDefinition(
        name="freshness-vs-standard",
        description="Does a shorter half-life lift engagement?",
        variants=[
            ExperimentVariant(name="control", config=StandardScoringConfig()),
            ExperimentVariant(name="fresh", config=FreshnessBoostScoringConfig()),
        ],
        traffic_allocation=[
            TrafficAllocation(variant_name="control", percentage=50),
            TrafficAllocation(variant_name="fresh", percentage=50),
        ],
    )


@pytest.fixture
def test_client():
    """
    TestClient fixture with fresh singletons.
    The content store is seeded with demo content.
    """
    clear_caches()

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    clear_caches()
