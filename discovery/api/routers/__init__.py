"""API routers package."""
from .admin import router as admin_router
from .discovery import router as discovery_router
from .experiments import router as experiments_router
from .health import router as health_router

__all__ = ["admin_router", "discovery_router", "experiments_router", "health_router"]
