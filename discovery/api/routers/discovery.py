"""
Discovery API router.
Next discovery, trending and similar-content endpoints.
"""
import logging

from fastapi import APIRouter, Depends, Header, Path, Query

from discovery.api.dependencies import (
    get_experiment_manager,
    get_ranking_orchestrator,
    get_trending_calculator,
)
from discovery.models.experiments import ExperimentAction
from discovery.models.schemas import (
    NextDiscoveryRequest,
    NextDiscoveryResponse,
    SimilarResponse,
    TrendingResponse,
    TrendingWindow,
    UserContext,
    utcnow,
)
from discovery.services.experiments import ExperimentManager
from discovery.services.ranking import RankingOrchestrator
from discovery.services.trending import TrendingCalculator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/discoveries", tags=["discoveries"])


@router.post(
    "/next",
    response_model=NextDiscoveryResponse,
    summary="Get Next Discovery",
    description="""
    Select the next discovery for a user.

    Candidates are drawn from a domain-diverse pool, scored on freshness,
    popularity, topic similarity and the user's wildness setting, and the
    best one is returned with a human-readable reason.

    When `experiment_id` is given and the user is in an active experiment,
    the assigned variant's scoring configuration is used and a `shown`
    event is logged.
    """,
    responses={
        200: {"description": "Discovery returned"},
        404: {"description": "No candidates available"},
    },
)
async def next_discovery(
    request: NextDiscoveryRequest,
    x_user_id: str = Header(
        ...,
        alias="X-User-ID",
        min_length=1,
        description="User identifier",
    ),
    orchestrator: RankingOrchestrator = Depends(get_ranking_orchestrator),
    experiments: ExperimentManager = Depends(get_experiment_manager),
) -> NextDiscoveryResponse:
    now = utcnow()
    context = UserContext(
        preferred_topics=set(request.preferred_topics),
        wildness=request.wildness,
        engagement_history=request.engagement_history,
        time_of_day=now.hour,
        day_of_week=now.weekday(),
        blocked_domains=set(request.blocked_domains),
    )

    variant = None
    scoring_config = None
    if request.experiment_id:
        variant = await experiments.assign_variant(x_user_id, request.experiment_id)
        if variant is not None:
            scoring_config = await experiments.get_variant_config(request.experiment_id, variant)

    result = await orchestrator.next(
        user_id=x_user_id,
        context=context,
        exclude_ids=request.seen_ids,
        scoring_config=scoring_config,
        variant=variant,
        session_id=request.session_id,
    )

    if variant is not None:
        await experiments.log_event(
            experiment_id=request.experiment_id,
            user_id=x_user_id,
            variant_name=variant,
            action=ExperimentAction.SHOWN,
            content_id=result.item.id,
            discovery_score=result.score,
            wildness_setting=request.wildness,
            session_id=request.session_id,
        )

    return NextDiscoveryResponse(
        discovery=result.item,
        score=round(result.score, 3),
        reason=result.reason,
        algorithm=result.algorithm,
        variant=variant,
    )


@router.get(
    "/trending",
    response_model=TrendingResponse,
    summary="Get Trending Content",
)
async def trending(
    time_window: TrendingWindow = Query(default=TrendingWindow.DAY),
    limit: int = Query(default=20, ge=1, le=50),
    calculator: TrendingCalculator = Depends(get_trending_calculator),
) -> TrendingResponse:
    """Latest trending snapshot for a window, computed on demand if empty."""
    items = await calculator.get_trending(time_window, limit)
    return TrendingResponse(time_window=time_window, items=items, count=len(items))


@router.get(
    "/{content_id}/similar",
    response_model=SimilarResponse,
    summary="Get Similar Content",
)
async def similar(
    content_id: str = Path(..., min_length=1),
    limit: int = Query(default=10, ge=1, le=50),
    orchestrator: RankingOrchestrator = Depends(get_ranking_orchestrator),
) -> SimilarResponse:
    items = await orchestrator.similar_to(content_id, limit)
    return SimilarResponse(reference_id=content_id, similar=items, count=len(items))
