"""
In-memory store implementations.
Used for local runs and testing.
Production would replace these with relational-store implementations.
"""
from datetime import timedelta
from threading import Lock
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from discovery.core.exceptions import AssignmentConflictError
from discovery.models.experiments import (
    Assignment,
    Experiment,
    ExperimentEvent,
    ExperimentStatus,
)
from discovery.models.schemas import (
    ContentFilter,
    ContentItem,
    ContentMetrics,
    ContentOrder,
    DiscoveryEvent,
    TopicWeight,
    TrendingSnapshot,
    TrendingWindow,
    utcnow,
)

DEFAULT_GLOBAL_ENGAGEMENT = 0.3


class InMemoryContentStore:
    """
    In-memory implementation of ContentStore.
    Simulates the content and content_metrics tables.
    """

    def __init__(self, seed_demo_content: bool = False) -> None:
        self._items: Dict[str, ContentItem] = {}
        self._metrics: Dict[str, ContentMetrics] = {}
        self._lock = Lock()
        if seed_demo_content:
            self._initialize_mock_data()

    def _initialize_mock_data(self) -> None:
        """Load demo content for local runs."""
        now = utcnow()
        hour = timedelta(hours=1)

        demo = [
            (
                ContentItem(
                    id="c1",
                    url="https://arstechnica.com/ai/compilers",
                    title="How Compilers Learned to Vectorize",
                    domain="arstechnica.com",
                    topics=["tech", "programming"],
                    topic_weights=[
                        TopicWeight(name="tech", confidence=0.9),
                        TopicWeight(name="programming", confidence=0.8),
                    ],
                    quality_score=0.85,
                    reading_time_minutes=12,
                    created_at=now - 6 * hour,
                ),
                ContentMetrics(views_count=420, likes_count=80, saves_count=30, shares_count=12, skip_count=40,
                               engagement_rate=0.29),
            ),
            (
                ContentItem(
                    id="c2",
                    url="https://www.quantamagazine.org/prime-gaps",
                    title="The Gaps Between Primes",
                    domain="quantamagazine.org",
                    topics=["science", "math"],
                    quality_score=0.92,
                    reading_time_minutes=15,
                    created_at=now - 30 * hour,
                ),
                ContentMetrics(views_count=900, likes_count=210, saves_count=95, shares_count=40, skip_count=60,
                               engagement_rate=0.38),
            ),
            (
                ContentItem(
                    id="c3",
                    url="https://pitchfork.com/features/ambient",
                    title="A Short History of Ambient Music",
                    domain="pitchfork.com",
                    topics=["music", "culture"],
                    quality_score=0.7,
                    reading_time_minutes=8,
                    created_at=now - 72 * hour,
                ),
                ContentMetrics(views_count=150, likes_count=20, saves_count=5, shares_count=2, skip_count=35,
                               engagement_rate=0.18),
            ),
            (
                ContentItem(
                    id="c4",
                    url="https://www.atlasobscura.com/places/salt-cathedral",
                    title="The Salt Cathedral of Zipaquira",
                    domain="atlasobscura.com",
                    topics=["travel", "history"],
                    quality_score=0.8,
                    reading_time_minutes=6,
                    created_at=now - 2 * hour,
                ),
                None,
            ),
            (
                ContentItem(
                    id="c5",
                    url="https://arstechnica.com/science/fusion",
                    title="Inside a Stellarator",
                    domain="arstechnica.com",
                    topics=["science", "tech"],
                    quality_score=0.75,
                    reading_time_minutes=10,
                    created_at=now - 200 * hour,
                ),
                ContentMetrics(views_count=60, likes_count=4, saves_count=1, shares_count=0, skip_count=12,
                               engagement_rate=0.08),
            ),
        ]
        for item, metrics in demo:
            self.add_content(item, metrics)

    def add_content(self, item: ContentItem, metrics: Optional[ContentMetrics] = None) -> None:
        with self._lock:
            self._items[item.id] = item
            if metrics is not None:
                self._metrics[item.id] = metrics

    def set_metrics(self, content_id: str, metrics: ContentMetrics) -> None:
        with self._lock:
            self._metrics[content_id] = metrics

    async def query_active_content(
        self,
        content_filter: ContentFilter,
        order_by: ContentOrder,
        limit: int,
        offset: int = 0,
    ) -> List[ContentItem]:
        """Fetch active items matching the filter, ordered descending."""
        with self._lock:
            items = [
                item for item in self._items.values()
                if item.is_active
                and item.id not in content_filter.exclude_ids
                and item.domain not in content_filter.exclude_domains
            ]

        if order_by == ContentOrder.QUALITY:
            items.sort(key=lambda i: (i.quality_score, i.created_at), reverse=True)
        else:
            items.sort(key=lambda i: i.created_at, reverse=True)

        return items[offset:offset + limit]

    async def get_content(self, content_id: str) -> Optional[ContentItem]:
        with self._lock:
            return self._items.get(content_id)

    async def get_metrics(self, content_ids: Sequence[str]) -> Dict[str, ContentMetrics]:
        with self._lock:
            return {cid: self._metrics[cid] for cid in content_ids if cid in self._metrics}

    async def get_global_engagement_average(self) -> float:
        """Mean engagement rate, or the default when no item has metrics."""
        with self._lock:
            rates = [m.engagement_rate for m in self._metrics.values()]
        if not rates:
            return DEFAULT_GLOBAL_ENGAGEMENT
        return sum(rates) / len(rates)


class InMemoryTrendingStore:
    """
    In-memory implementation of TrendingStore.
    One live row set per time window.
    """

    def __init__(self) -> None:
        self._rows: Dict[TrendingWindow, List[TrendingSnapshot]] = {}
        self._lock = Lock()

    async def replace_trending_snapshot(
        self,
        window: TrendingWindow,
        rows: Sequence[TrendingSnapshot],
    ) -> None:
        """Delete every row for the window, then insert the new set."""
        with self._lock:
            self._rows.pop(window, None)
            self._rows[window] = list(rows)

    async def get_trending(self, window: TrendingWindow, limit: int) -> List[TrendingSnapshot]:
        with self._lock:
            rows = list(self._rows.get(window, []))
        rows.sort(key=lambda r: r.trending_score, reverse=True)
        return rows[:limit]


class InMemoryExperimentStore:
    """
    In-memory implementation of ExperimentStore.
    Enforces (user_id, experiment_id) uniqueness and compare-and-set transitions.
    """

    def __init__(self) -> None:
        self._experiments: Dict[str, Experiment] = {}
        self._assignments: Dict[Tuple[str, str], Assignment] = {}
        self._events: List[ExperimentEvent] = []
        self._lock = Lock()

    async def create_experiment(self, experiment: Experiment) -> Experiment:
        with self._lock:
            self._experiments[experiment.id] = experiment
        return experiment

    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        with self._lock:
            return self._experiments.get(experiment_id)

    async def list_experiments(
        self, status: Optional[ExperimentStatus] = None
    ) -> List[Experiment]:
        with self._lock:
            experiments = list(self._experiments.values())
        if status is not None:
            experiments = [e for e in experiments if e.status == status]
        return sorted(experiments, key=lambda e: e.created_at, reverse=True)

    async def transition_experiment(
        self,
        experiment_id: str,
        from_statuses: Iterable[ExperimentStatus],
        to_status: ExperimentStatus,
        changes: Optional[Dict[str, object]] = None,
    ) -> Optional[Experiment]:
        with self._lock:
            current = self._experiments.get(experiment_id)
            if current is None or current.status not in set(from_statuses):
                return None
            update = dict(changes or {})
            update["status"] = to_status
            updated = current.model_copy(update=update)
            self._experiments[experiment_id] = updated
            return updated

    async def delete_experiment(self, experiment_id: str) -> bool:
        with self._lock:
            current = self._experiments.get(experiment_id)
            if current is None or current.status != ExperimentStatus.DRAFT:
                return False
            del self._experiments[experiment_id]
            return True

    async def get_assignment(self, user_id: str, experiment_id: str) -> Optional[Assignment]:
        with self._lock:
            return self._assignments.get((user_id, experiment_id))

    async def insert_assignment(self, assignment: Assignment) -> Assignment:
        key = (assignment.user_id, assignment.experiment_id)
        with self._lock:
            if key in self._assignments:
                raise AssignmentConflictError(assignment.user_id, assignment.experiment_id)
            self._assignments[key] = assignment
        return assignment

    async def append_event(self, event: ExperimentEvent) -> None:
        with self._lock:
            self._events.append(event)

    async def query_events(
        self, experiment_id: str, variant_name: Optional[str] = None
    ) -> List[ExperimentEvent]:
        with self._lock:
            return [
                e for e in self._events
                if e.experiment_id == experiment_id
                and (variant_name is None or e.variant_name == variant_name)
            ]


class InMemoryTelemetrySink:
    """Collects discovery events in a list."""

    def __init__(self) -> None:
        self._events: List[DiscoveryEvent] = []
        self._lock = Lock()

    @property
    def events(self) -> List[DiscoveryEvent]:
        with self._lock:
            return list(self._events)

    async def record_discovery_event(self, event: DiscoveryEvent) -> None:
        with self._lock:
            self._events.append(event)
