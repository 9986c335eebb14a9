"""
Job status endpoints.

Read-only: jobs are created by /api/video/create and mutated only by
their encode. No cancel, retry or delete operations are exposed.
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from ..jobs.store import JobStore
from ..streaming.job_stream import SSE_HEADERS, JobProgressStream

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


def _get_job_or_404(store: JobStore, job_id: str) -> dict:
    job = store.get(job_id)
    if job is None:
        logger.info(f"[Jobs] Job not found for status request: {job_id}")
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_public_dict()


@router.get("")
async def list_jobs(request: Request):
    """
    List all tracked jobs, newest first.

    Finished jobs disappear after the retention window.
    """
    store: JobStore = request.app.state.job_store
    jobs = store.list_jobs()
    return {"count": len(jobs), "jobs": [job.to_public_dict() for job in jobs]}


@router.get("/{job_id}")
async def get_job(job_id: str, request: Request):
    """
    Retrieve the full job record.

    Raises:
        404: If the job ID does not exist
    """
    return _get_job_or_404(request.app.state.job_store, job_id)


@router.get("/{job_id}/status")
async def get_job_status(job_id: str, request: Request):
    """Same record as GET /api/jobs/{job_id}; kept for polling clients."""
    return _get_job_or_404(request.app.state.job_store, job_id)


@router.get("/{job_id}/stream")
async def stream_job(job_id: str, request: Request):
    """
    Server-sent events for one job.

    Emits the current snapshot on connect, then one event per change of
    status or progress; closes after done/failed or a not-found event.
    """
    stream = JobProgressStream(
        store=request.app.state.job_store,
        job_id=job_id,
        poll_interval=request.app.state.settings.stream_poll_interval,
        is_disconnected=request.is_disconnected,
    )
    return StreamingResponse(
        stream.sse(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
