"""
Main FastAPI application entry point.
Configures logging, exception handlers, routers and the trending scheduler.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from discovery.api.dependencies import get_trending_scheduler
from discovery.api.routers import (
    admin_router,
    discovery_router,
    experiments_router,
    health_router,
)
from discovery.config import get_settings
from discovery.config.logging import configure_logging
from discovery.core.exceptions import AppException
from discovery.core.telemetry import setup_telemetry


# =============================================================================
# Lifespan (Startup/Shutdown)
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler; owns the trending scheduler."""
    logger = logging.getLogger(__name__)
    settings = get_settings()

    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ALGORITHM_VERSION})")
    logger.info(f"Experiments kill switch active: {settings.EXPERIMENTS_KILL_SWITCH}")

    scheduler = None
    if settings.TRENDING_SCHEDULER_ENABLED:
        scheduler = get_trending_scheduler()
        scheduler.start()

    yield

    logger.info("Shutting down application")
    if scheduler is not None:
        scheduler.stop()


# =============================================================================
# Exception Handlers
# =============================================================================


async def app_exception_handler(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    """Handle custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected exceptions - return generic error."""
    logger = logging.getLogger(__name__)
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            }
        },
    )


# =============================================================================
# Application Factory
# =============================================================================


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    configure_logging(debug=settings.DEBUG)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
        Discovery Engine

        Ranks a pool of content into a personalized, diverse, explainable
        next discovery for each user.

        ## Features
        - Freshness, Bayesian-smoothed popularity and topic similarity scoring
        - Wildness-controlled exploration
        - Per-domain diversity cap on candidate pools
        - Windowed trending snapshots refreshed on a schedule
        - A/B experiments with sticky assignment and significance testing
        - Observability: JSON logs, Prometheus, OpenTelemetry
        """,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router)
    app.include_router(discovery_router)
    app.include_router(experiments_router)
    app.include_router(admin_router)

    setup_telemetry(app)

    return app


app = create_app()


# =============================================================================
# Development Entry Point
# =============================================================================


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "discovery.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
