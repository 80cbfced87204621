"""
Admin router.
Manual triggers for background jobs.
"""
import logging

from fastapi import APIRouter, Depends

from discovery.api.dependencies import get_trending_calculator
from discovery.models.schemas import TrendingRunSummary
from discovery.services.trending import TrendingCalculator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])


@router.post(
    "/trending/recalculate",
    response_model=TrendingRunSummary,
    summary="Recalculate Trending",
)
async def recalculate_trending(
    calculator: TrendingCalculator = Depends(get_trending_calculator),
) -> TrendingRunSummary:
    """
    Run the trending job now.
    Returns `skipped: true` if a scheduled run is already in flight.
    """
    logger.info("Manual trending recalculation requested")
    return await calculator.run_once()
