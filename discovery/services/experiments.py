"""
Experiment manager.
Lifecycle, sticky variant assignment, event logging and results for A/B
comparison of ranking strategies.
"""
import logging
import random
import uuid
from typing import Callable, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from discovery.core.exceptions import (
    AssignmentConflictError,
    InvalidExperimentStateError,
    MalformedEventError,
    NotFoundError,
    ValidationError,
)
from discovery.core.telemetry import EXPERIMENT_ASSIGNMENTS
from discovery.models.experiments import (
    Assignment,
    Experiment,
    ExperimentDefinition,
    ExperimentEvent,
    ExperimentResults,
    ExperimentStatus,
    Recommendation,
    RecommendationKind,
    ScoringConfig,
    SignificanceResult,
    VariantMetrics,
)
from discovery.models.interfaces import ExperimentStore, ExperimentTargeting, RandomSource
from discovery.models.schemas import utcnow
from discovery.services.statistics import compute_variant_metrics, two_proportion_test

logger = logging.getLogger(__name__)

ALLOCATION_TOLERANCE = 0.01


class ExperimentManager:
    """
    Manages experiments end to end.

    Responsibilities:
    - Validate definitions and guard lifecycle transitions
    - Assign each user a sticky variant (first persisted assignment wins)
    - Append outcome events
    - Aggregate metrics and recommend a winner
    """

    def __init__(
        self,
        store: ExperimentStore,
        targeting: ExperimentTargeting,
        rng: Optional[RandomSource] = None,
        min_sample_size: int = 100,
        significance_level: float = 0.05,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        """
        Initialize experiment manager.

        Args:
            store: Persistence for experiments, assignments and events
            targeting: Population targeting and kill switch
            rng: Random source for weighted variant assignment
            min_sample_size: Discoveries the leader needs before a verdict
            significance_level: Two-tailed p-value threshold
            id_factory: Generates experiment ids
        """
        self._store = store
        self._targeting = targeting
        self._rng = rng or random.Random()
        self._min_sample_size = min_sample_size
        self._significance_level = significance_level
        self._id_factory = id_factory

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def create_experiment(
        self,
        definition: ExperimentDefinition,
        created_by: str = "system",
    ) -> Experiment:
        """
        Create a draft experiment.

        Raises:
            ValidationError: If variants or traffic allocation are inconsistent
        """
        self._validate_definition(definition)

        experiment = Experiment(
            id=self._id_factory(),
            created_by=created_by,
            **definition.model_dump(),
        )
        created = await self._store.create_experiment(experiment)
        logger.info(
            f"Experiment created: {created.name}",
            extra={"experiment_id": created.id},
        )
        return created

    async def get_experiment(self, experiment_id: str) -> Experiment:
        experiment = await self._store.get_experiment(experiment_id)
        if experiment is None:
            raise NotFoundError("Experiment", experiment_id)
        return experiment

    async def list_experiments(self, status: Optional[ExperimentStatus] = None) -> List[Experiment]:
        return await self._store.list_experiments(status)

    async def start(self, experiment_id: str) -> Experiment:
        return await self._transition(
            experiment_id,
            [ExperimentStatus.DRAFT],
            ExperimentStatus.ACTIVE,
            "start",
            {"started_at": utcnow()},
        )

    async def pause(self, experiment_id: str) -> Experiment:
        return await self._transition(
            experiment_id, [ExperimentStatus.ACTIVE], ExperimentStatus.PAUSED, "pause"
        )

    async def resume(self, experiment_id: str) -> Experiment:
        return await self._transition(
            experiment_id, [ExperimentStatus.PAUSED], ExperimentStatus.ACTIVE, "resume"
        )

    async def complete(
        self,
        experiment_id: str,
        winner_variant: Optional[str] = None,
        confidence_level: Optional[float] = None,
    ) -> Experiment:
        """
        Complete an active or paused experiment, optionally recording a winner.

        Raises:
            ValidationError: If ``winner_variant`` is not one of the variants
            InvalidExperimentStateError: If the experiment is draft or completed
        """
        experiment = await self.get_experiment(experiment_id)
        if winner_variant is not None and experiment.variant(winner_variant) is None:
            raise ValidationError(
                f"Unknown variant: {winner_variant}",
                details={"experiment_id": experiment_id, "variant": winner_variant},
            )

        return await self._transition(
            experiment_id,
            [ExperimentStatus.ACTIVE, ExperimentStatus.PAUSED],
            ExperimentStatus.COMPLETED,
            "complete",
            {
                "ended_at": utcnow(),
                "winner_variant": winner_variant,
                "confidence_level": confidence_level,
            },
        )

    async def delete(self, experiment_id: str) -> None:
        """
        Delete a draft experiment.

        Raises:
            InvalidExperimentStateError: If the experiment has left draft
        """
        experiment = await self.get_experiment(experiment_id)
        if experiment.status != ExperimentStatus.DRAFT:
            raise InvalidExperimentStateError(experiment_id, experiment.status.value, "delete")

        if not await self._store.delete_experiment(experiment_id):
            # Started between the read and the delete
            current = await self.get_experiment(experiment_id)
            raise InvalidExperimentStateError(experiment_id, current.status.value, "delete")

        logger.info("Experiment deleted", extra={"experiment_id": experiment_id})

    # -------------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------------

    async def assign_variant(
        self,
        user_id: str,
        experiment_id: str,
        is_new_user: Optional[bool] = None,
    ) -> Optional[str]:
        """
        Sticky variant for a user.

        Returns:
            Variant name, or None if the experiment is not active, the kill
            switch is on, or the user is outside the target population
        """
        experiment = await self._store.get_experiment(experiment_id)
        if experiment is None or experiment.status != ExperimentStatus.ACTIVE:
            return None

        if self._targeting.is_kill_switch_active():
            return None

        existing = await self._store.get_assignment(user_id, experiment_id)
        if existing is not None:
            return existing.variant_name

        if not self._targeting.is_user_targeted(experiment, user_id, is_new_user):
            return None

        variant_name = self.pick_variant(experiment)
        try:
            assignment = await self._store.insert_assignment(
                Assignment(user_id=user_id, experiment_id=experiment_id, variant_name=variant_name)
            )
        except AssignmentConflictError:
            winner = await self._store.get_assignment(user_id, experiment_id)
            if winner is None:
                raise
            logger.debug(
                "Concurrent assignment resolved to first writer",
                extra={"user_id": user_id, "experiment_id": experiment_id, "variant": winner.variant_name},
            )
            return winner.variant_name

        EXPERIMENT_ASSIGNMENTS.labels(experiment_id=experiment_id, variant=assignment.variant_name).inc()
        logger.info(
            "User assigned to variant",
            extra={"user_id": user_id, "experiment_id": experiment_id, "variant": assignment.variant_name},
        )
        return assignment.variant_name

    def pick_variant(self, experiment: Experiment) -> str:
        """Weighted random variant by traffic allocation."""
        allocations = [a for a in experiment.traffic_allocation if a.percentage > 0]
        total = sum(a.percentage for a in allocations)
        threshold = self._rng.random() * total

        cumulative = 0.0
        for allocation in allocations:
            cumulative += allocation.percentage
            if threshold < cumulative:
                return allocation.variant_name
        return allocations[-1].variant_name

    async def get_variant_config(self, experiment_id: str, variant_name: str) -> ScoringConfig:
        experiment = await self.get_experiment(experiment_id)
        variant = experiment.variant(variant_name)
        if variant is None:
            raise NotFoundError("Variant", f"{experiment_id}/{variant_name}")
        return variant.config

    # -------------------------------------------------------------------------
    # Events and results
    # -------------------------------------------------------------------------

    async def log_event(self, **fields) -> ExperimentEvent:
        """
        Append an experiment event.

        Raises:
            MalformedEventError: If the fields do not form a valid event
        """
        try:
            event = ExperimentEvent(**fields)
        except PydanticValidationError as e:
            raise MalformedEventError(
                e.errors(include_url=False, include_context=False, include_input=False)
            )

        await self._store.append_event(event)
        return event

    async def compute_metrics(self, experiment_id: str) -> List[VariantMetrics]:
        """Per-variant metrics, highest engagement rate first."""
        experiment = await self.get_experiment(experiment_id)
        events = await self._store.query_events(experiment_id)
        return self._aggregate(experiment, events)

    async def compare_variants(
        self,
        experiment_id: str,
        variant_a: str,
        variant_b: str,
    ) -> SignificanceResult:
        experiment = await self.get_experiment(experiment_id)
        for name in (variant_a, variant_b):
            if experiment.variant(name) is None:
                raise NotFoundError("Variant", f"{experiment_id}/{name}")

        events_a = await self._store.query_events(experiment_id, variant_a)
        events_b = await self._store.query_events(experiment_id, variant_b)
        return two_proportion_test(
            compute_variant_metrics(variant_a, events_a),
            compute_variant_metrics(variant_b, events_b),
            self._significance_level,
        )

    async def get_results(self, experiment_id: str) -> ExperimentResults:
        """Metrics, pairwise comparisons and a winner recommendation."""
        experiment = await self.get_experiment(experiment_id)
        events = await self._store.query_events(experiment_id)
        metrics = self._aggregate(experiment, events)

        comparisons = [
            two_proportion_test(metrics[i], metrics[j], self._significance_level)
            for i in range(len(metrics))
            for j in range(i + 1, len(metrics))
        ]

        return ExperimentResults(
            experiment=experiment,
            metrics=metrics,
            comparisons=comparisons,
            recommendation=self.recommend(metrics, comparisons),
        )

    def recommend(
        self,
        metrics: List[VariantMetrics],
        comparisons: List[SignificanceResult],
    ) -> Optional[Recommendation]:
        """
        Recommendation for the leading variant.

        Branches in order: insufficient data when the leader has fewer than
        ``min_sample_size`` discoveries, then significant win, then leading
        but not significant. None with fewer than two variants.
        """
        if len(metrics) < 2:
            return None

        top, runner_up = metrics[0], metrics[1]
        comparison = next(
            (
                c for c in comparisons
                if {c.variant_a, c.variant_b} == {top.variant_name, runner_up.variant_name}
            ),
            None,
        )
        if comparison is None:
            return None

        improvement = abs(comparison.difference * 100)
        confidence = (1 - comparison.p_value) * 100

        if top.total_discoveries < self._min_sample_size:
            return Recommendation(
                kind=RecommendationKind.INSUFFICIENT_DATA,
                winner_variant=top.variant_name,
                confidence=50.0,
                reason=(
                    f"Insufficient data ({top.total_discoveries} samples). "
                    f"Continue testing to reach significance."
                ),
            )

        if comparison.is_significant:
            return Recommendation(
                kind=RecommendationKind.SIGNIFICANT_WIN,
                winner_variant=top.variant_name,
                confidence=confidence,
                reason=(
                    f"{top.variant_name} shows {improvement:.1f}% improvement "
                    f"with statistical significance (p < {self._significance_level:g})"
                ),
            )

        return Recommendation(
            kind=RecommendationKind.LEADING_NOT_SIGNIFICANT,
            winner_variant=top.variant_name,
            confidence=confidence,
            reason=(
                f"{top.variant_name} leads by {improvement:.1f}% "
                f"but not yet statistically significant. Continue testing."
            ),
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _aggregate(experiment: Experiment, events: Iterable[ExperimentEvent]) -> List[VariantMetrics]:
        events = list(events)
        metrics = [compute_variant_metrics(v.name, events) for v in experiment.variants]
        metrics.sort(key=lambda m: (-m.engagement_rate, m.variant_name))
        return metrics

    async def _transition(
        self,
        experiment_id: str,
        from_statuses: List[ExperimentStatus],
        to_status: ExperimentStatus,
        action: str,
        changes: Optional[dict] = None,
    ) -> Experiment:
        experiment = await self.get_experiment(experiment_id)
        if experiment.status not in from_statuses:
            raise InvalidExperimentStateError(experiment_id, experiment.status.value, action)

        updated = await self._store.transition_experiment(
            experiment_id, from_statuses, to_status, changes
        )
        if updated is None:
            # Lost a race with another transition
            current = await self.get_experiment(experiment_id)
            raise InvalidExperimentStateError(experiment_id, current.status.value, action)

        logger.info(
            f"Experiment {action}: {experiment.status.value} -> {to_status.value}",
            extra={"experiment_id": experiment_id},
        )
        return updated

    @staticmethod
    def _validate_definition(definition: ExperimentDefinition) -> None:
        names = [v.name for v in definition.variants]
        if len(set(names)) != len(names):
            raise ValidationError("Variant names must be unique", details={"variants": names})

        allocated = [a.variant_name for a in definition.traffic_allocation]
        if sorted(allocated) != sorted(names):
            raise ValidationError(
                "Traffic allocation must cover each variant exactly once",
                details={"variants": names, "allocated": allocated},
            )

        total = sum(a.percentage for a in definition.traffic_allocation)
        if abs(total - 100.0) > ALLOCATION_TOLERANCE:
            raise ValidationError(
                f"Traffic allocation must sum to 100, got {total}",
                details={"total": total},
            )
