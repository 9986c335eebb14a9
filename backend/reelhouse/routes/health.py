"""
Health check endpoint.
"""

import logging
import time

from fastapi import APIRouter, Request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    """Liveness plus the number of tracked jobs."""
    store = request.app.state.job_store
    return {
        "ok": True,
        "ts": int(time.time() * 1000),
        "jobs": store.count(),
        "activeEncodes": request.app.state.video_job_service.active_count,
    }
