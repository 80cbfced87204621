"""
Health check router for observability.
"""
from fastapi import APIRouter

from discovery.api.dependencies import get_events_circuit_breaker, get_trending_scheduler
from discovery.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health Check")
async def health_check() -> dict:
    """Basic health check endpoint."""
    return {"status": "healthy"}


@router.get("/health/ready", summary="Readiness Check")
async def readiness_check() -> dict:
    """
    Readiness check for Kubernetes.
    Returns circuit breaker state, trending scheduler status and the
    experiment kill switch.
    """
    circuit_breaker = get_events_circuit_breaker()
    settings = get_settings()

    return {
        "status": "ready",
        "algorithm": settings.ALGORITHM_VERSION,
        "circuit_breaker": {
            "name": circuit_breaker.name,
            "state": circuit_breaker.state.value,
        },
        "trending_scheduler": get_trending_scheduler().get_status(),
        "experiments": {
            "kill_switch_active": settings.EXPERIMENTS_KILL_SWITCH,
        },
    }
