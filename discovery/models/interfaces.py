"""
Store and collaborator interfaces (abstractions).
Using Protocol for structural subtyping (duck typing with type hints).
The relational store, telemetry sink and random source are injected through these.
"""
from abc import ABC, abstractmethod
from typing import (
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

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
    TrendingSnapshot,
    TrendingWindow,
)


@runtime_checkable
class RandomSource(Protocol):
    """Anything with ``random() -> float`` in [0, 1); ``random.Random`` qualifies."""

    def random(self) -> float:
        ...


@runtime_checkable
class ContentStore(Protocol):
    """
    Interface for content and interaction-metric reads.
    Production: relational store.
    Testing: In-memory implementation.
    Implementations raise ``StoreUnavailableError`` on infrastructure failure.
    """

    async def query_active_content(
        self,
        content_filter: ContentFilter,
        order_by: ContentOrder,
        limit: int,
        offset: int = 0,
    ) -> List[ContentItem]:
        """
        Fetch active items matching the filter.

        Args:
            content_filter: Exclusions to push down
            order_by: Descending base ordering
            limit: Maximum rows
            offset: Rows to skip

        Returns:
            Ordered list of items (may be empty)
        """
        ...

    async def get_content(self, content_id: str) -> Optional[ContentItem]:
        """Fetch a single item regardless of active flag."""
        ...

    async def get_metrics(self, content_ids: Sequence[str]) -> Dict[str, ContentMetrics]:
        """
        Fetch metrics for the given ids.

        Returns:
            Mapping id -> metrics; ids without metrics are omitted
        """
        ...

    async def get_global_engagement_average(self) -> float:
        """Mean engagement rate across all items with metrics."""
        ...


@runtime_checkable
class TrendingStore(Protocol):
    """Interface for the trending snapshot table."""

    async def replace_trending_snapshot(
        self,
        window: TrendingWindow,
        rows: Sequence[TrendingSnapshot],
    ) -> None:
        """Delete every row for ``window`` then insert ``rows``."""
        ...

    async def get_trending(self, window: TrendingWindow, limit: int) -> List[TrendingSnapshot]:
        """Live rows for ``window`` ordered by trending score."""
        ...


@runtime_checkable
class ExperimentStore(Protocol):
    """
    Interface for experiments, assignments and the event log.
    ``insert_assignment`` must enforce uniqueness on (user_id, experiment_id).
    """

    async def create_experiment(self, experiment: Experiment) -> Experiment:
        ...

    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        ...

    async def list_experiments(
        self, status: Optional[ExperimentStatus] = None
    ) -> List[Experiment]:
        ...

    async def transition_experiment(
        self,
        experiment_id: str,
        from_statuses: Iterable[ExperimentStatus],
        to_status: ExperimentStatus,
        changes: Optional[Dict[str, object]] = None,
    ) -> Optional[Experiment]:
        """
        Compare-and-set status change.

        Returns:
            Updated experiment, or None when the current status is not in ``from_statuses``
        """
        ...

    async def delete_experiment(self, experiment_id: str) -> bool:
        """Delete only if still draft; returns True if deleted."""
        ...

    async def get_assignment(self, user_id: str, experiment_id: str) -> Optional[Assignment]:
        ...

    async def insert_assignment(self, assignment: Assignment) -> Assignment:
        """
        Persist a new assignment.

        Raises:
            AssignmentConflictError: If one already exists for the pair
        """
        ...

    async def append_event(self, event: ExperimentEvent) -> None:
        ...

    async def query_events(
        self, experiment_id: str, variant_name: Optional[str] = None
    ) -> List[ExperimentEvent]:
        ...


@runtime_checkable
class TelemetrySink(Protocol):
    """Destination for discovery telemetry rows."""

    async def record_discovery_event(self, event: DiscoveryEvent) -> None:
        ...


class ExperimentTargeting(ABC):
    """
    Abstract base class for experiment population targeting.
    Supports a global kill switch and percentage rollout.
    """

    @abstractmethod
    def is_user_targeted(
        self,
        experiment: Experiment,
        user_id: str,
        is_new_user: Optional[bool] = None,
    ) -> bool:
        """
        Check if the user belongs to the experiment's target population.

        Args:
            experiment: Experiment with population filters
            user_id: User identifier for percentage rollout
            is_new_user: Whether the user is new; None when unknown

        Returns:
            True if the user may be assigned a variant
        """
        pass

    @abstractmethod
    def is_kill_switch_active(self) -> bool:
        """
        Check if experiment assignment is globally disabled.

        Returns:
            True if no user should receive a variant
        """
        pass
