"""
Experiments API router.
Administration, assignment, event logging and results.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Header, Query, Response, status

from discovery.api.dependencies import get_experiment_manager
from discovery.models.experiments import (
    AssignmentResponse,
    CompleteExperimentRequest,
    Experiment,
    ExperimentDefinition,
    ExperimentEvent,
    ExperimentResults,
    ExperimentStatus,
    VariantMetrics,
)
from discovery.services.experiments import ExperimentManager

router = APIRouter(prefix="/v1/experiments", tags=["experiments"])


@router.post(
    "",
    response_model=Experiment,
    status_code=status.HTTP_201_CREATED,
    summary="Create Experiment",
)
async def create_experiment(
    definition: ExperimentDefinition,
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
    manager: ExperimentManager = Depends(get_experiment_manager),
) -> Experiment:
    """Create a draft experiment. Traffic allocation must sum to 100."""
    return await manager.create_experiment(definition, created_by=x_user_id or "system")


@router.get("", response_model=List[Experiment], summary="List Experiments")
async def list_experiments(
    status_filter: Optional[ExperimentStatus] = Query(default=None, alias="status"),
    manager: ExperimentManager = Depends(get_experiment_manager),
) -> List[Experiment]:
    return await manager.list_experiments(status_filter)


@router.get("/{experiment_id}", response_model=Experiment, summary="Get Experiment")
async def get_experiment(
    experiment_id: str,
    manager: ExperimentManager = Depends(get_experiment_manager),
) -> Experiment:
    return await manager.get_experiment(experiment_id)


@router.post("/{experiment_id}/start", response_model=Experiment, summary="Start Experiment")
async def start_experiment(
    experiment_id: str,
    manager: ExperimentManager = Depends(get_experiment_manager),
) -> Experiment:
    return await manager.start(experiment_id)


@router.post("/{experiment_id}/pause", response_model=Experiment, summary="Pause Experiment")
async def pause_experiment(
    experiment_id: str,
    manager: ExperimentManager = Depends(get_experiment_manager),
) -> Experiment:
    return await manager.pause(experiment_id)


@router.post("/{experiment_id}/resume", response_model=Experiment, summary="Resume Experiment")
async def resume_experiment(
    experiment_id: str,
    manager: ExperimentManager = Depends(get_experiment_manager),
) -> Experiment:
    return await manager.resume(experiment_id)


@router.post("/{experiment_id}/complete", response_model=Experiment, summary="Complete Experiment")
async def complete_experiment(
    experiment_id: str,
    request: Optional[CompleteExperimentRequest] = None,
    manager: ExperimentManager = Depends(get_experiment_manager),
) -> Experiment:
    request = request or CompleteExperimentRequest()
    return await manager.complete(
        experiment_id,
        winner_variant=request.winner_variant,
        confidence_level=request.confidence_level,
    )


@router.delete(
    "/{experiment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Draft Experiment",
)
async def delete_experiment(
    experiment_id: str,
    manager: ExperimentManager = Depends(get_experiment_manager),
) -> Response:
    await manager.delete(experiment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{experiment_id}/assignment",
    response_model=AssignmentResponse,
    summary="Get Or Create Assignment",
)
async def get_assignment(
    experiment_id: str,
    x_user_id: str = Header(..., alias="X-User-ID", min_length=1),
    manager: ExperimentManager = Depends(get_experiment_manager),
) -> AssignmentResponse:
    """Sticky variant for the user; `variant_name` is null when not enrolled."""
    variant = await manager.assign_variant(x_user_id, experiment_id)
    return AssignmentResponse(
        experiment_id=experiment_id,
        user_id=x_user_id,
        variant_name=variant,
    )


@router.post(
    "/{experiment_id}/events",
    response_model=ExperimentEvent,
    status_code=status.HTTP_201_CREATED,
    summary="Log Experiment Event",
)
async def log_event(
    experiment_id: str,
    payload: Dict[str, Any] = Body(...),
    manager: ExperimentManager = Depends(get_experiment_manager),
) -> ExperimentEvent:
    return await manager.log_event(**{**payload, "experiment_id": experiment_id})


@router.get(
    "/{experiment_id}/metrics",
    response_model=List[VariantMetrics],
    summary="Get Variant Metrics",
)
async def get_metrics(
    experiment_id: str,
    manager: ExperimentManager = Depends(get_experiment_manager),
) -> List[VariantMetrics]:
    return await manager.compute_metrics(experiment_id)


@router.get(
    "/{experiment_id}/results",
    response_model=ExperimentResults,
    summary="Get Experiment Results",
)
async def get_results(
    experiment_id: str,
    manager: ExperimentManager = Depends(get_experiment_manager),
) -> ExperimentResults:
    """Metrics, pairwise significance tests and a winner recommendation."""
    return await manager.get_results(experiment_id)
