"""
TravelDiary Backend: Health Check Route
========================================

What:  GET /health for container probes and load balancers.
How:   Counts stored entries as a cheap end-to-end storage probe.

Status levels:
    healthy:   storage reachable (HTTP 200)
    unhealthy: storage unreachable (HTTP 503, stop routing traffic)
"""

import logging
import time

from fastapi import APIRouter, Depends, Request, Response

from travel_diary import __version__
from travel_diary.dependencies import get_entry_service
from travel_diary.schemas.entry import HealthResponse
from travel_diary.services.entry_service import EntryService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Storage unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(
    request: Request,
    response: Response,
    service: EntryService = Depends(get_entry_service),
) -> HealthResponse:
    storage_status = "connected"
    overall = "healthy"
    entry_count = None

    try:
        entry_count = await service.repository.count()
    except Exception as e:
        storage_status = "disconnected"
        overall = "unhealthy"
        response.status_code = 503
        logger.warning("Health check: storage unreachable: %s", str(e))

    return HealthResponse(
        status=overall,
        version=__version__,
        storage_backend=request.app.state.settings.storage_backend,
        storage=storage_status,
        entry_count=entry_count,
        uptime_seconds=round(time.time() - request.app.state.started_at, 2),
    )
