"""Health check and metrics endpoints."""

import time
from typing import Literal
from uuid import uuid4

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from liaison import __version__
from liaison.api.dependencies import SessionStoreDep
from liaison.api.models.health import ComponentHealth, HealthResponse
from liaison.conversation.store import SessionStore
from liaison.db.errors import StoreError
from liaison.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def _check_store_health(store: SessionStore) -> ComponentHealth:
    """Round-trip a lookup to make sure the backend answers."""
    start = time.perf_counter()
    try:
        await store.get_session(uuid4())
    except StoreError as e:
        return ComponentHealth(
            name="session_store",
            status="unhealthy",
            latency_ms=(time.perf_counter() - start) * 1000,
            message=str(e),
        )
    return ComponentHealth(
        name="session_store",
        status="healthy",
        latency_ms=(time.perf_counter() - start) * 1000,
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(session_store: SessionStoreDep) -> HealthResponse:
    """Check service health status."""
    components = [await _check_store_health(session_store)]

    overall: Literal["healthy", "unhealthy"] = (
        "unhealthy" if any(c.status == "unhealthy" for c in components) else "healthy"
    )
    logger.debug("health_check_completed", status=overall)
    return HealthResponse(status=overall, version=__version__, components=components)


async def get_metrics() -> Response:
    """Prometheus metrics in text format for scraping."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
