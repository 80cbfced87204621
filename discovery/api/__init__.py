"""API package - FastAPI routes and dependencies."""
from .dependencies import get_experiment_manager, get_ranking_orchestrator
from .routers import admin_router, discovery_router, experiments_router, health_router

__all__ = [
    "admin_router",
    "discovery_router",
    "experiments_router",
    "get_experiment_manager",
    "get_ranking_orchestrator",
    "health_router",
]
