"""API route registration."""

from fastapi import APIRouter, FastAPI

from liaison.config.settings import Settings
from liaison.observability.logging import get_logger

logger = get_logger(__name__)


def create_v1_router() -> APIRouter:
    """Create the v1 API router with all routes."""
    router = APIRouter(prefix="/v1")

    from liaison.api.routes.notes import router as notes_router
    from liaison.api.routes.operators import router as operators_router
    from liaison.api.routes.sessions import router as sessions_router

    router.include_router(sessions_router, tags=["Sessions"])
    router.include_router(operators_router, tags=["Operators"])
    router.include_router(notes_router, tags=["Notes"])

    logger.debug("v1_router_created", routes=["sessions", "operators", "notes"])
    return router


def register_routes(app: FastAPI, settings: Settings) -> None:
    """Register all routes with the FastAPI application.

    Args:
        app: FastAPI application instance
        settings: Settings deciding whether metrics are exposed
    """
    app.include_router(create_v1_router())

    from liaison.api.routes.health import get_metrics
    from liaison.api.routes.health import router as health_router
    from liaison.api.routes.realtime import router as realtime_router

    app.include_router(health_router, tags=["Health"])
    app.include_router(realtime_router, tags=["Realtime"])

    metrics = settings.observability.metrics
    if metrics.enabled:
        app.add_api_route(metrics.path, get_metrics, methods=["GET"], tags=["Health"])

    logger.info("routes_registered", metrics_enabled=metrics.enabled)
