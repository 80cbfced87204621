"""
Unit tests for experiment management.
"""
import random
from typing import Optional

import pytest

from discovery.core.exceptions import (
    InvalidExperimentStateError,
    MalformedEventError,
    NotFoundError,
    ValidationError,
)
from discovery.models.experiments import (
    Assignment,
    Experiment,
    ExperimentAction,
    ExperimentStatus,
    FreshnessBoostScoringConfig,
    RecommendationKind,
    TrafficAllocation,
)
from discovery.models.interfaces import ExperimentTargeting
from discovery.repositories.memory import InMemoryExperimentStore
from discovery.services.experiments import ExperimentManager
from tests.conftest import FixedRandom


class StaticTargeting(ExperimentTargeting):
    """Targeting with a fixed answer and a settable kill switch."""

    def __init__(self, targeted: bool = True, kill_switch: bool = False) -> None:
        self.targeted = targeted
        self.kill_switch = kill_switch

    def is_user_targeted(self, experiment: Experiment, user_id: str, is_new_user: Optional[bool] = None) -> bool:
        return self.targeted and not self.kill_switch

    def is_kill_switch_active(self) -> bool:
        return self.kill_switch


class RacingExperimentStore(InMemoryExperimentStore):
    """Store where another writer assigns the user just before our insert lands."""

    def __init__(self, competing_variant: str) -> None:
        super().__init__()
        self._competing_variant = competing_variant

    async def insert_assignment(self, assignment: Assignment) -> Assignment:
        if await self.get_assignment(assignment.user_id, assignment.experiment_id) is None:
            await super().insert_assignment(
                assignment.model_copy(update={"variant_name": self._competing_variant})
            )
        return await super().insert_assignment(assignment)


@pytest.fixture
def targeting():
    return StaticTargeting()


@pytest.fixture
def manager(experiment_store, targeting):
    return ExperimentManager(experiment_store, targeting, rng=random.Random(42))


async def _active(manager, definition):
    experiment = await manager.create_experiment(definition)
    return await manager.start(experiment.id)


async def _log_outcomes(manager, experiment_id, variant, shown, liked):
    for i in range(shown):
        user_id = f"{variant}-user-{i}"
        await manager.log_event(
            experiment_id=experiment_id, user_id=user_id, variant_name=variant, action="shown"
        )
        if i < liked:
            await manager.log_event(
                experiment_id=experiment_id, user_id=user_id, variant_name=variant, action="liked"
            )


class TestLifecycle:
    """Tests for experiment creation and transitions."""

    @pytest.mark.asyncio
    async def test_create_is_draft(self, manager, ab_definition):
        experiment = await manager.create_experiment(ab_definition, created_by="alice")

        assert experiment.status == ExperimentStatus.DRAFT
        assert experiment.created_by == "alice"
        assert experiment.variant("fresh").config == FreshnessBoostScoringConfig()

    @pytest.mark.asyncio
    async def test_allocation_must_sum_to_100(self, manager, ab_definition):
        ab_definition.traffic_allocation[1] = TrafficAllocation(variant_name="fresh", percentage=40)

        with pytest.raises(ValidationError):
            await manager.create_experiment(ab_definition)

    @pytest.mark.asyncio
    async def test_allocation_must_cover_variants(self, manager, ab_definition):
        ab_definition.traffic_allocation[1] = TrafficAllocation(variant_name="other", percentage=50)

        with pytest.raises(ValidationError):
            await manager.create_experiment(ab_definition)

    @pytest.mark.asyncio
    async def test_variant_names_unique(self, manager, ab_definition):
        ab_definition.variants[1] = ab_definition.variants[1].model_copy(update={"name": "control"})
        ab_definition.traffic_allocation[1] = TrafficAllocation(variant_name="control", percentage=50)

        with pytest.raises(ValidationError):
            await manager.create_experiment(ab_definition)

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, manager, ab_definition):
        experiment = await manager.create_experiment(ab_definition)

        started = await manager.start(experiment.id)
        paused = await manager.pause(experiment.id)
        resumed = await manager.resume(experiment.id)
        completed = await manager.complete(experiment.id, winner_variant="fresh", confidence_level=97.5)

        assert started.status == ExperimentStatus.ACTIVE
        assert started.started_at is not None
        assert paused.status == ExperimentStatus.PAUSED
        assert resumed.status == ExperimentStatus.ACTIVE
        assert completed.status == ExperimentStatus.COMPLETED
        assert completed.winner_variant == "fresh"
        assert completed.confidence_level == 97.5
        assert completed.ended_at is not None

    @pytest.mark.asyncio
    async def test_invalid_transition_leaves_state_unchanged(self, manager, ab_definition):
        experiment = await manager.create_experiment(ab_definition)

        with pytest.raises(InvalidExperimentStateError):
            await manager.pause(experiment.id)
        with pytest.raises(InvalidExperimentStateError):
            await manager.complete(experiment.id)

        assert (await manager.get_experiment(experiment.id)).status == ExperimentStatus.DRAFT

    @pytest.mark.asyncio
    async def test_completed_is_terminal(self, manager, ab_definition):
        experiment = await _active(manager, ab_definition)
        await manager.complete(experiment.id)

        for action in (manager.start, manager.pause, manager.resume, manager.complete):
            with pytest.raises(InvalidExperimentStateError):
                await action(experiment.id)

    @pytest.mark.asyncio
    async def test_complete_with_unknown_winner(self, manager, ab_definition):
        experiment = await _active(manager, ab_definition)

        with pytest.raises(ValidationError):
            await manager.complete(experiment.id, winner_variant="nope")

        assert (await manager.get_experiment(experiment.id)).status == ExperimentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_delete_only_drafts(self, manager, ab_definition):
        draft = await manager.create_experiment(ab_definition)
        active = await _active(manager, ab_definition)

        await manager.delete(draft.id)
        with pytest.raises(InvalidExperimentStateError):
            await manager.delete(active.id)

        with pytest.raises(NotFoundError):
            await manager.get_experiment(draft.id)
        assert (await manager.get_experiment(active.id)).status == ExperimentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_list_by_status(self, manager, ab_definition):
        await manager.create_experiment(ab_definition)
        active = await _active(manager, ab_definition)

        listed = await manager.list_experiments(ExperimentStatus.ACTIVE)

        assert [e.id for e in listed] == [active.id]
        assert len(await manager.list_experiments()) == 2


class TestAssignment:
    """Tests for sticky variant assignment."""

    @pytest.mark.asyncio
    async def test_assignment_is_sticky(self, manager, ab_definition):
        experiment = await _active(manager, ab_definition)

        first = await manager.assign_variant("u1", experiment.id)
        repeats = {await manager.assign_variant("u1", experiment.id) for _ in range(20)}

        assert first in {"control", "fresh"}
        assert repeats == {first}

    @pytest.mark.asyncio
    async def test_concurrent_insert_returns_first_writer(self, targeting, ab_definition):
        store = RacingExperimentStore(competing_variant="fresh")
        manager = ExperimentManager(store, targeting, rng=FixedRandom(0.1))
        experiment = await _active(manager, ab_definition)

        variant = await manager.assign_variant("u1", experiment.id)

        assert variant == "fresh"
        assert await manager.assign_variant("u1", experiment.id) == "fresh"
        assert (await store.get_assignment("u1", experiment.id)).variant_name == "fresh"

    @pytest.mark.asyncio
    async def test_split_is_balanced(self, manager, ab_definition):
        experiment = await _active(manager, ab_definition)

        variants = [await manager.assign_variant(f"user-{n}", experiment.id) for n in range(1000)]

        count_a = variants.count("control")
        count_b = variants.count("fresh")
        assert count_a + count_b == 1000
        assert abs(count_a - count_b) / 1000 < 0.1

    def test_pick_variant_follows_cumulative_allocation(self, experiment_store, targeting, ab_definition):
        experiment = Experiment(id="e", **ab_definition.model_dump())

        low = ExperimentManager(experiment_store, targeting, rng=FixedRandom(0.49))
        high = ExperimentManager(experiment_store, targeting, rng=FixedRandom(0.5))

        assert low.pick_variant(experiment) == "control"
        assert high.pick_variant(experiment) == "fresh"

    @pytest.mark.asyncio
    async def test_inactive_experiment_not_assigned(self, manager, ab_definition):
        draft = await manager.create_experiment(ab_definition)

        assert await manager.assign_variant("u1", draft.id) is None
        assert await manager.assign_variant("u1", "missing") is None

    @pytest.mark.asyncio
    async def test_kill_switch_blocks_existing_assignments(self, manager, targeting, ab_definition):
        experiment = await _active(manager, ab_definition)
        await manager.assign_variant("u1", experiment.id)

        targeting.kill_switch = True

        assert await manager.assign_variant("u1", experiment.id) is None

    @pytest.mark.asyncio
    async def test_untargeted_user_not_assigned(self, manager, targeting, ab_definition):
        experiment = await _active(manager, ab_definition)
        targeting.targeted = False

        assert await manager.assign_variant("u1", experiment.id) is None

    @pytest.mark.asyncio
    async def test_variant_config(self, manager, ab_definition):
        experiment = await manager.create_experiment(ab_definition)

        config = await manager.get_variant_config(experiment.id, "fresh")

        assert config.strategy == "freshness_boost"
        with pytest.raises(NotFoundError):
            await manager.get_variant_config(experiment.id, "nope")


class TestEventsAndResults:
    """Tests for event logging, metrics and recommendations."""

    @pytest.mark.asyncio
    async def test_malformed_event_rejected(self, manager, experiment_store):
        with pytest.raises(MalformedEventError) as exc_info:
            await manager.log_event(experiment_id="e", user_id="", variant_name="a", action="clicked")

        fields = {tuple(err["loc"]) for err in exc_info.value.details["errors"]}
        assert ("user_id",) in fields
        assert ("action",) in fields
        assert await experiment_store.query_events("e") == []

    @pytest.mark.asyncio
    async def test_event_appended(self, manager, experiment_store):
        event = await manager.log_event(
            experiment_id="e", user_id="u", variant_name="a", action=ExperimentAction.SAVED, time_to_action=4.5
        )

        assert event.action == ExperimentAction.SAVED
        assert await experiment_store.query_events("e") == [event]

    @pytest.mark.asyncio
    async def test_metrics_are_idempotent(self, manager, ab_definition):
        experiment = await _active(manager, ab_definition)
        await _log_outcomes(manager, experiment.id, "control", shown=20, liked=5)
        await _log_outcomes(manager, experiment.id, "fresh", shown=20, liked=8)

        first = await manager.compute_metrics(experiment.id)
        second = await manager.compute_metrics(experiment.id)

        assert first == second
        assert [m.variant_name for m in first] == ["fresh", "control"]

    @pytest.mark.asyncio
    async def test_small_sample_is_insufficient_data(self, manager, ab_definition):
        experiment = await _active(manager, ab_definition)
        await _log_outcomes(manager, experiment.id, "control", shown=60, liked=50)
        await _log_outcomes(manager, experiment.id, "fresh", shown=60, liked=5)

        results = await manager.get_results(experiment.id)

        assert results.comparisons[0].is_significant is True
        assert results.recommendation.kind == RecommendationKind.INSUFFICIENT_DATA
        assert results.recommendation.winner_variant == "control"
        assert results.recommendation.confidence == 50.0
        assert results.recommendation.reason.startswith("Insufficient data (60 samples)")

    @pytest.mark.asyncio
    async def test_significant_win(self, manager, ab_definition):
        experiment = await _active(manager, ab_definition)
        await _log_outcomes(manager, experiment.id, "control", shown=150, liked=30)
        await _log_outcomes(manager, experiment.id, "fresh", shown=150, liked=75)

        results = await manager.get_results(experiment.id)

        assert results.recommendation.kind == RecommendationKind.SIGNIFICANT_WIN
        assert results.recommendation.winner_variant == "fresh"
        assert "(p < 0.05)" in results.recommendation.reason

    @pytest.mark.asyncio
    async def test_leading_not_significant(self, manager, ab_definition):
        experiment = await _active(manager, ab_definition)
        await _log_outcomes(manager, experiment.id, "control", shown=120, liked=31)
        await _log_outcomes(manager, experiment.id, "fresh", shown=120, liked=30)

        results = await manager.get_results(experiment.id)

        assert results.recommendation.kind == RecommendationKind.LEADING_NOT_SIGNIFICANT
        assert results.recommendation.winner_variant == "control"

    @pytest.mark.asyncio
    async def test_compare_variants(self, manager, ab_definition):
        experiment = await _active(manager, ab_definition)
        await _log_outcomes(manager, experiment.id, "control", shown=10, liked=2)
        await _log_outcomes(manager, experiment.id, "fresh", shown=10, liked=6)

        result = await manager.compare_variants(experiment.id, "fresh", "control")

        assert result.variant_a == "fresh"
        assert result.difference == pytest.approx(0.4)
        with pytest.raises(NotFoundError):
            await manager.compare_variants(experiment.id, "fresh", "nope")
